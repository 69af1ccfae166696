"""CLI entry point for the ClawSync agent.

A terminal chat loop over the same orchestrator the HTTP API uses, for
trying out provider and prompt configuration locally.  For production,
use the FastAPI server (clawsync/server.py).

Usage:
    uv run python -m clawsync.main            # normal mode (quiet)
    uv run python -m clawsync.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import logging
import uuid

from dotenv import load_dotenv

from clawsync.agent import create_clawsync_agent

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

    logging.getLogger("clawsync").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="ClawSync agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  ClawSync Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new thread.")
    print("=" * 60 + "\n")

    agent = create_clawsync_agent()
    session_id = f"cli_{uuid.uuid4().hex[:8]}"
    thread_id: str | None = None
    logger.info("Started CLI session: %s", session_id)

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        if user_input.lower() == "new":
            thread_id = None
            print("\n>> Next message starts a new thread.\n")
            continue

        try:
            result = agent.send(user_input, session_id, thread_id)
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break

        if result.error:
            print(f"\nAgent: [error] {result.error}\n")
            continue

        thread_id = result.thread_id
        print(f"\nAgent: {result.response}\n")

    agent.activity_log.flush()


if __name__ == "__main__":
    main()
