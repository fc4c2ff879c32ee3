#!/usr/bin/env python3
"""Support Assistant CLI."""

import argparse
import asyncio
import sys
import uuid

from config.settings import Settings
from schemas.context import Channel
from orchestrator import SupportAssistantOrchestrator
from utils.logging_config import configure_logging


async def run(args: argparse.Namespace) -> int:
    """Run a one-shot question or an interactive session."""
    settings = Settings(
        llm_provider=args.provider,
        geocoding_enabled=not args.no_geocoding,
        verbose=args.verbose,
    )
    orchestrator = SupportAssistantOrchestrator(settings=settings)
    await orchestrator.start()

    session_key = args.session or str(uuid.uuid4())
    channel = Channel(args.channel)

    try:
        if args.question:
            result = await orchestrator.handle_utterance(session_key, args.question, channel)
            print(result.reply)
            return 0

        print(f"Session {session_key} on {channel.value}. Type 'quit' to exit.\n")
        while True:
            try:
                utterance = input("you> ").strip()
            except EOFError:
                break
            if not utterance:
                continue
            if utterance.lower() in ("quit", "exit"):
                break

            result = await orchestrator.handle_utterance(session_key, utterance, channel)
            print(f"assistant> {result.reply}\n")
            if args.verbose:
                print(f"  [intent={result.intent.value} confidence={result.confidence:.2f} "
                      f"priority={result.priority.value}]\n")
            if result.should_end_call:
                break
        return 0
    finally:
        await orchestrator.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Support Assistant - conversational domestic violence resource helper"
    )
    parser.add_argument(
        "--question",
        "-q",
        type=str,
        help="Single utterance to process (interactive session if omitted)"
    )
    parser.add_argument(
        "--channel",
        "-c",
        type=str,
        choices=[c.value for c in Channel],
        default=Channel.WEB.value,
        help="Delivery channel to format replies for (default: web)"
    )
    parser.add_argument(
        "--session",
        "-s",
        type=str,
        help="Session key to continue (default: new random key)"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default="openai",
        help="LLM provider (default: openai)"
    )
    parser.add_argument(
        "--no-geocoding",
        action="store_true",
        help="Use the built-in US location list instead of Nominatim"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()
    configure_logging(verbose=args.verbose)

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
