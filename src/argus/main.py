"""Argus entry point.

Usage:
    argus bot                          Run the Telegram bot
    argus check URL [--title T]        Match a URL against stored events
    argus check URL --extract-only     Only show what the URL says
    argus import FILE.jsonl            Ingest exported messages
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from groq import AsyncGroq

from .config import ArgusConfig, config_from_env
from .context.matcher import ContextMatcher, extract_context_from_url
from .ingest.pipeline import IngestionPipeline
from .llm import ArgusLLM
from .logging import configure_logger
from .memory import EventStore


def _open_store(config: ArgusConfig) -> EventStore:
    assert config.db_path is not None
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    store = EventStore(config.db_path)
    store.init_db()
    return store


def _make_llm(config: ArgusConfig, json_logger) -> ArgusLLM:
    return ArgusLLM(
        AsyncGroq(api_key=os.getenv("GROQ_API_KEY")),
        model=config.model,
        max_prompt_events=config.max_prompt_events,
        json_logger=json_logger,
    )


def cmd_bot(args: argparse.Namespace) -> int:
    """Run the Telegram bot."""
    from .telegram import TelegramBot

    config = config_from_env()
    configure_logger(config.log_dir)
    try:
        bot = TelegramBot(config=config)
    except ValueError as e:
        print(f"❌ Error: {e}")
        return 1
    bot.run()
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Match a URL against stored events."""
    if args.extract_only:
        context = extract_context_from_url(args.url, args.title)
        print(json.dumps({"activity": context.activity, "keywords": context.keywords}, indent=2))
        return 0

    config = config_from_env()
    json_logger = configure_logger(config.log_dir)
    store = _open_store(config)
    try:
        matcher = ContextMatcher(store, _make_llm(config, json_logger), json_logger)
        result = asyncio.run(
            matcher.match(args.url, args.title, hot_window_days=config.hot_window_days)
        )
    finally:
        store.close()

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


def read_jsonl(path: Path) -> list[dict]:
    """Read one JSON object per non-blank line."""
    records = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_number}: invalid JSON ({e})") from e
    return records


def cmd_import(args: argparse.Namespace) -> int:
    """Ingest exported messages from a JSONL file."""
    try:
        records = read_jsonl(Path(args.file))
    except (OSError, ValueError) as e:
        print(f"❌ Error: {e}")
        return 1

    config = config_from_env()
    json_logger = configure_logger(config.log_dir)
    store = _open_store(config)
    try:
        pipeline = IngestionPipeline(store, _make_llm(config, json_logger), config, json_logger)
        summary = asyncio.run(pipeline.import_messages(records))
    finally:
        store.close()

    print(json.dumps(summary))
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="argus",
        description="Event memory distilled from chat messages",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    bot_parser = subparsers.add_parser("bot", help="Run the Telegram bot")
    bot_parser.set_defaults(func=cmd_bot)

    check_parser = subparsers.add_parser("check", help="Match a URL against stored events")
    check_parser.add_argument("url", help="URL being browsed")
    check_parser.add_argument("--title", default=None, help="Page title")
    check_parser.add_argument(
        "--extract-only",
        action="store_true",
        help="Only print the activity and keywords read off the URL",
    )
    check_parser.set_defaults(func=cmd_check)

    import_parser = subparsers.add_parser("import", help="Ingest messages from a JSONL file")
    import_parser.add_argument("file", help="One {content, sender, chat_id, timestamp} per line")
    import_parser.set_defaults(func=cmd_import)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))

    parser = create_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
