"""MessageMind command-line entry point.

Usage examples:
    # Analyze one day's conversations, highest priority first
    messagemind analyze messages.json --date 2024-05-01

    # Semantic search over a message export
    messagemind search messages.json "dinner plans" -k 5

    # Index statistics
    messagemind stats messages.json

    # Per-message intents with their distribution
    messagemind intents messages.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from messagemind.config import settings
from messagemind.errors import MessageMindError
from messagemind.service import MessageMind

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def load_messages(path: Path) -> list[Any]:
    """Read a JSON array of messages from *path*."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        msg = f"{path} must contain a JSON array of messages"
        raise ValueError(msg)
    return data


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


async def _analyze(mind: MessageMind, args: argparse.Namespace) -> str:
    results = await mind.analyze_conversations(load_messages(args.file), args.date)
    return _dump([r.model_dump(mode="json", by_alias=True) for r in results])


async def _search(mind: MessageMind, args: argparse.Namespace) -> str:
    await mind.index_messages(load_messages(args.file))
    results = await mind.search(args.query, args.k)
    return _dump([r.model_dump(mode="json", by_alias=True) for r in results])


async def _stats(mind: MessageMind, args: argparse.Namespace) -> str:
    await mind.index_messages(load_messages(args.file))
    return _dump(mind.index_stats().model_dump(mode="json", by_alias=True))


async def _intents(mind: MessageMind, args: argparse.Namespace) -> str:
    intents = mind.analyze_intents(load_messages(args.file))
    return _dump(
        {
            "intents": [i.model_dump(mode="json", by_alias=True) for i in intents],
            "stats": mind.intent_stats(intents).model_dump(mode="json", by_alias=True),
        }
    )


COMMANDS = {"analyze": _analyze, "search": _search, "stats": _stats, "intents": _intents}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="messagemind", description="Analyze and search chat conversations"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Summarize conversations and rank by priority")
    analyze.add_argument("file", type=Path, help="JSON array of messages")
    analyze.add_argument("--date", help="UTC date (YYYY-MM-DD) or 'all' (default: all)")

    search = sub.add_parser("search", help="Semantic search over the messages")
    search.add_argument("file", type=Path, help="JSON array of messages")
    search.add_argument("query", help="Search text")
    search.add_argument(
        "-k", type=int, default=None, help=f"Max results (default: {settings.default_search_limit})"
    )

    stats = sub.add_parser("stats", help="Index the messages and print statistics")
    stats.add_argument("file", type=Path, help="JSON array of messages")

    intents = sub.add_parser("intents", help="Classify each message and summarize the intents")
    intents.add_argument("file", type=Path, help="JSON array of messages")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        mind = MessageMind.get()
        output = asyncio.run(COMMANDS[args.command](mind, args))
    except (OSError, ValueError, MessageMindError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
