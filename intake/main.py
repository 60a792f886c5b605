"""CLI entry point for the booking assistant.

A terminal chat for development: turns run locally through the same graph
as the API, and the draft is kept here between turns exactly as the web
client keeps it.

Usage:
    python -m intake.main            # normal mode (quiet)
    python -m intake.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import json
import logging

from dotenv import load_dotenv

from intake.agent import create_booking_agent, process_turn
from intake.models import BookingDraft, NextStep

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("intake").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Patient intake booking assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Appointment Booking Assistant - CLI Chat")
    print("=" * 60)
    print("  Commands: 'quit' to exit, 'new' to start over, 'draft' to show data.")
    print("=" * 60 + "\n")

    agent = create_booking_agent()
    draft = BookingDraft()

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Take care.")
            break

        if user_input.lower() == "new":
            draft = BookingDraft()
            print("\n>> New booking started.\n")
            continue

        if user_input.lower() == "draft":
            print(json.dumps(draft.to_wire(), indent=2) + "\n")
            continue

        try:
            result = process_turn(agent, user_input, draft)
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nAssistant: I'm sorry, something went wrong: {e}\n")
            continue

        draft = result.updated_draft
        print(f"\nAssistant: {result.response_text}")
        if result.suggested_action:
            print(f"  >> {result.suggested_action}")
        if result.next_step == NextStep.CONFIRMATION:
            print("  >> All details collected.")
        print()


if __name__ == "__main__":
    main()
