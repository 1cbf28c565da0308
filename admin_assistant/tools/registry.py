"""Tool registry: schemas offered to the model and the dispatch that runs them.

Each tool is an argument schema (a pydantic model whose title is the tool
name and whose docstring is the tool description, so ``bind_tools`` can
consume it directly) plus a handler returning a :class:`ToolOutcome`.

Failure policy:

* a tool that is unknown or not offered this turn, or arguments that do
  not validate, are a contract violation by the model and raise
  :class:`InvalidToolCallError`;
* anything else that goes wrong inside a handler is logged and becomes an
  ``error`` outcome, so one failed action never aborts the turn.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from admin_assistant.config import ANNOUNCEMENTS_ENABLED
from admin_assistant.errors import InvalidToolCallError
from admin_assistant.models import (
    ADD_SHOP_HOLIDAY,
    ADD_STAFF_HOLIDAY,
    CREATE_ANNOUNCEMENT,
    CREATE_APPOINTMENT,
    ERROR,
    AnnouncementOutcome,
    AppointmentOutcome,
    HolidayOutcome,
    ToolOutcome,
)
from admin_assistant.services.backoffice_client import BackofficeClient, TenantScope
from admin_assistant.services.metrics import metrics
from admin_assistant.tools.announcements import CreateAnnouncementArgs, create_announcement
from admin_assistant.tools.appointments import CreateAppointmentArgs, create_appointment
from admin_assistant.tools.holidays import (
    ShopHolidayArgs,
    StaffHolidayArgs,
    add_shop_holiday,
    add_staff_holiday,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolContext:
    """Everything a handler may touch besides its arguments."""

    scope: TenantScope
    backoffice: BackofficeClient
    now: datetime
    time_zone: str
    message: str = ""


@dataclass(frozen=True)
class ToolSpec:
    name: str
    args_schema: type[BaseModel]
    handler: Callable[[Any, ToolContext], ToolOutcome]
    on_error: Callable[[], ToolOutcome]


ALL_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        CREATE_APPOINTMENT,
        CreateAppointmentArgs,
        create_appointment,
        lambda: AppointmentOutcome(status=ERROR),
    ),
    ToolSpec(
        ADD_SHOP_HOLIDAY,
        ShopHolidayArgs,
        add_shop_holiday,
        lambda: HolidayOutcome(status=ERROR, scope="shop"),
    ),
    ToolSpec(
        ADD_STAFF_HOLIDAY,
        StaffHolidayArgs,
        add_staff_holiday,
        lambda: HolidayOutcome(status=ERROR, scope="staff"),
    ),
    ToolSpec(
        CREATE_ANNOUNCEMENT,
        CreateAnnouncementArgs,
        create_announcement,
        lambda: AnnouncementOutcome(status=ERROR),
    ),
)


class ToolRegistry:
    def __init__(self, announcements_enabled: bool = ANNOUNCEMENTS_ENABLED):
        self.announcements_enabled = announcements_enabled
        self._tools = {
            tool.name: tool
            for tool in ALL_TOOLS
            if announcements_enabled or tool.name != CREATE_ANNOUNCEMENT
        }

    def available(self) -> list[str]:
        """Names of the tools this deployment may offer, in a stable order."""
        return list(self._tools)

    def schemas(self, names: list[str]) -> list[type[BaseModel]]:
        return [self._tools[name].args_schema for name in names if name in self._tools]

    def validate(
        self,
        name: str,
        args: dict[str, Any] | None,
        context: ToolContext,
        allowed: list[str] | None = None,
    ) -> BaseModel:
        """Check a requested call and parse its arguments without running it.

        Raises :class:`InvalidToolCallError` for a tool not offered this turn
        or arguments the schema cannot accept.  Unknown keys are dropped.
        """
        tool = self._tools.get(name)
        if tool is None or (allowed is not None and name not in allowed):
            raise InvalidToolCallError(f"Tool not allowed: {name}")
        if args is not None and not isinstance(args, dict):
            raise InvalidToolCallError(f"Arguments for {name} must be an object")

        payload = dict(args or {})
        raw_text = payload.get("rawText")
        if not isinstance(raw_text, str) or not raw_text.strip():
            payload["rawText"] = context.message

        try:
            return tool.args_schema.model_validate(payload)
        except ValidationError as exc:
            raise InvalidToolCallError(f"Invalid arguments for {name}: {exc}") from exc

    def run(self, name: str, parsed: BaseModel, context: ToolContext) -> ToolOutcome:
        tool = self._tools[name]
        try:
            outcome = tool.handler(parsed, context)
        except Exception:
            logger.exception("Tool %s failed", name)
            outcome = tool.on_error()

        metrics.record_tool_outcome(name, outcome.status)
        logger.info("Tool %s -> %s%s", name, outcome.status, f" ({outcome.reason})" if outcome.reason else "")
        return outcome

    def execute(
        self,
        name: str,
        args: dict[str, Any] | None,
        context: ToolContext,
        allowed: list[str] | None = None,
    ) -> ToolOutcome:
        return self.run(name, self.validate(name, args, context, allowed), context)
