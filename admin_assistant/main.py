"""CLI entry point for the back-office assistant.

A terminal chat loop for development. For production, use the FastAPI
server (admin_assistant/server.py).

Usage:
    python -m admin_assistant.main --admin u1 --brand b1 --local l1
    python -m admin_assistant.main --admin u1 --brand b1 --local l1 --debug
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from admin_assistant.agent import AdminAssistant, AssistantUnavailableError
from admin_assistant.errors import AssistantError
from admin_assistant.services.backoffice_client import TenantScope

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("admin_assistant").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Back-office assistant CLI")
    parser.add_argument("--admin", required=True, help="Admin user id")
    parser.add_argument("--brand", required=True, help="Brand id")
    parser.add_argument("--local", required=True, help="Local (location) id")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Asistente de administración - CLI")
    print("=" * 60)
    print("  Escribe tu mensaje y pulsa Enter.")
    print("  Comandos: 'salir' para terminar, 'nueva' para otra sesión.")
    print("=" * 60 + "\n")

    assistant = AdminAssistant()
    scope = TenantScope(brand_id=args.brand, local_id=args.local)
    session_id: str | None = None

    while True:
        try:
            user_input = input("Tú: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nHasta luego.")
            break

        if not user_input:
            continue

        if user_input.lower() in ("salir", "exit", "quit", "q"):
            print("\nHasta luego.")
            break

        if user_input.lower() == "nueva":
            session_id = None
            print("\n>> Se abrirá una sesión nueva con el próximo mensaje.\n")
            continue

        try:
            result = assistant.chat(args.admin, user_input, session_id, scope=scope)
        except KeyboardInterrupt:
            print("\n\nHasta luego.")
            break
        except AssistantUnavailableError:
            print("\nAsistente: El servicio no está disponible ahora mismo. Inténtalo de nuevo.\n")
            continue
        except AssistantError as e:
            logger.warning("Turn rejected: %s", e)
            print(f"\nAsistente: No se pudo procesar el mensaje ({type(e).__name__}).\n")
            continue

        if result.session_id != session_id:
            logger.info("Session: %s", result.session_id)
        session_id = result.session_id
        print(f"\nAsistente: {result.reply}\n")


if __name__ == "__main__":
    main()
