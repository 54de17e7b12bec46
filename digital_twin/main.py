"""CLI entry point for the Digital Twin.

A terminal chat against the same agent and database the API uses, for
trying the persona and the booking flow locally.  For production, use
the FastAPI server (digital_twin/server.py).

Usage:
    python -m digital_twin.main            # normal mode (quiet)
    python -m digital_twin.main --debug    # debug mode (shows API calls)
    python -m digital_twin.main --voice    # short, speech-style replies
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from digital_twin.agent import create_digital_twin_agent
from digital_twin.config import PERSONA_NAME
from digital_twin.db.store import get_database
from digital_twin.services.conversations import run_chat_turn
from digital_twin.services.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("digital_twin").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Digital Twin CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--voice", action="store_true",
        help="Use voice mode (faster model, short plain replies)",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)
    mode = "voice" if args.voice else "text"

    print("\n" + "=" * 60)
    print(f"  {PERSONA_NAME}'s Digital Twin - CLI Chat ({mode} mode)")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    db = get_database()
    db.create_schema()
    agent = create_digital_twin_agent(db)
    conversation_id: str | None = None

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Thanks for stopping by.")
            break

        if user_input.lower() == "new":
            conversation_id = None
            print("\n>> The next message starts a new conversation.\n")
            continue

        try:
            turn = run_chat_turn(
                agent, user_input, conversation_id=conversation_id, mode=mode, db=db,
            )
            if conversation_id is None:
                logger.info("Started conversation: %s", turn.conversation_id)
            conversation_id = turn.conversation_id
            print(f"\n{PERSONA_NAME}: {turn.reply}\n")

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except UpstreamServiceError as e:
            print(f"\n{PERSONA_NAME}: I'm sorry, I can't answer right now ({e}).")
            print("     Please try again in a moment.\n")
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\n{PERSONA_NAME}: I'm sorry, something went wrong: {e}")
            print("     Please try again or type 'new' to start a fresh conversation.\n")


if __name__ == "__main__":
    main()
