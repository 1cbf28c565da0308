"""FastAPI route definitions for the back-office assistant API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Header, HTTPException, Request

from admin_assistant.agent import (
    AdminAssistant,
    AdminNotAuthorizedError,
    AssistantUnavailableError,
    DailyLimitExceededError,
    InvalidToolCallError,
    SessionNotFoundError,
)
from admin_assistant.api.schemas import (
    ChatActionsResponse,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    SessionMessageResponse,
    SessionResponse,
)
from admin_assistant.services.backoffice_client import TenantScope

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_assistant(request: Request) -> AdminAssistant:
    """Retrieve the assistant built during the FastAPI lifespan (see ``server.py``)."""
    assistant = getattr(request.app.state, "agent", None)
    if assistant is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return assistant


def _scope(brand_id: str, local_id: str) -> TenantScope:
    if not brand_id.strip() or not local_id.strip():
        raise HTTPException(status_code=400, detail="X-Brand-Id and X-Local-Id are required.")
    return TenantScope(brand_id=brand_id.strip(), local_id=local_id.strip())


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    http_request: Request,
    x_admin_user_id: str = Header(...),
    x_brand_id: str = Header(...),
    x_local_id: str = Header(...),
):
    """Send a message to the assistant and get its reply.

    ``AdminAssistant.chat`` blocks on the model and back-office calls, so
    it runs in the default thread-pool via ``asyncio.to_thread``.
    """
    assistant = _get_assistant(http_request)
    scope = _scope(x_brand_id, x_local_id)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(
            assistant.chat,
            x_admin_user_id,
            request.message,
            request.session_id,
            scope=scope,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail="The message must not be empty.") from e
    except InvalidToolCallError as e:
        logger.warning("[%s] Rejected tool call: %s", request_id, e)
        raise HTTPException(status_code=400, detail="The request could not be processed.") from e
    except AdminNotAuthorizedError as e:
        raise HTTPException(status_code=403, detail="Only administrators can use the assistant.") from e
    except DailyLimitExceededError as e:
        raise HTTPException(status_code=429, detail="Daily assistant limit reached. Try again tomorrow.") from e
    except AssistantUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail="The assistant could not complete the request. Please try again.",
        ) from e
    except Exception as e:
        # Full traceback stays server-side; the client gets a generic message.
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return ChatResponse(
        reply=result.reply,
        session_id=result.session_id,
        actions=ChatActionsResponse(**result.actions.model_dump()),
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    http_request: Request,
    x_admin_user_id: str = Header(...),
    x_brand_id: str = Header(...),
    x_local_id: str = Header(...),
):
    """Return the summary and stored user/assistant messages of a session."""
    assistant = _get_assistant(http_request)
    scope = _scope(x_brand_id, x_local_id)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        transcript = await asyncio.to_thread(
            assistant.get_session, x_admin_user_id, session_id, scope=scope,
        )
    except AdminNotAuthorizedError as e:
        raise HTTPException(status_code=403, detail="Only administrators can use the assistant.") from e
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Session not found.") from e
    except AssistantUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail="The session could not be loaded. Please try again.",
        ) from e
    except Exception as e:
        logger.exception("[%s] Error loading session %s", request_id, session_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return SessionResponse(
        session_id=transcript.session_id,
        summary=transcript.summary,
        messages=[
            SessionMessageResponse(
                id=message.id,
                role=message.role,
                content=message.content,
                created_at=message.created_at,
            )
            for message in transcript.messages
        ],
    )
