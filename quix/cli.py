"""
Quix CLI - Command-line interface for the orchestration pipeline.

Commands:
    quix ask "What's on my board?" --bridges mcp.yaml    Answer one message
    quix tools --bridges mcp.yaml                        List discovered tools
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
from typing import Optional

from . import __version__


def _configure_logging(level: str, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_history(path: Optional[str]) -> list:
    from .models import TranscriptMessage

    if not path:
        return []
    with open(path) as f:
        data = json.load(f)
    return [TranscriptMessage.from_dict(item) for item in data]


def _load_bridge(path: Optional[str]):
    from .mcp import BridgeConfig, MCPBridge

    if not path:
        return None
    return MCPBridge(BridgeConfig.from_yaml(path))


async def _ask(args: argparse.Namespace) -> int:
    from .common import common_category
    from .config import QuixConfig
    from .exceptions import QuixError
    from .orchestrator import Orchestrator

    config = QuixConfig.from_env()
    if args.model:
        config = dataclasses.replace(
            config, model=args.model, provider=None, api_key=os.environ.get("QUIX_API_KEY")
        )
    if args.max_cycles:
        config = dataclasses.replace(config, max_cycles=args.max_cycles)

    history = _load_history(args.history)
    bridge = _load_bridge(args.bridges or config.bridge_config_path)
    orchestrator = Orchestrator.from_config(config)

    try:
        categories = [common_category()]
        if bridge is not None:
            categories.extend(await bridge.load_categories())
            for name, error in bridge.failures.items():
                print(f"Warning: {name}: {error.message}", file=sys.stderr)

        result = await orchestrator.process(args.message, history, categories, args.author)
    except QuixError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        if bridge is not None:
            await bridge.close_all()

    print(result.content)
    if args.show_tools and result.tool_call_log is not None:
        print(json.dumps([r.to_dict() for r in result.tool_call_log], indent=2))
    return 0


async def _tools(args: argparse.Namespace) -> int:
    from .common import common_category

    bridge = _load_bridge(args.bridges)
    try:
        categories = [common_category()]
        if bridge is not None:
            categories.extend(await bridge.load_categories())
    finally:
        if bridge is not None:
            await bridge.close_all()

    for category in categories:
        print(f"{category.key}:")
        for descriptor in category.descriptors:
            print(f"  - {descriptor.name} [{descriptor.side_effect.value}]")
            if args.verbose and descriptor.description:
                print(f"      {descriptor.description}")
    if bridge is not None:
        for name, error in bridge.failures.items():
            print(f"{name}: unavailable ({error.message})")
        return 1 if bridge.failures else 0
    return 0


def cmd_ask(args: argparse.Namespace) -> None:
    """Answer one message with the common tools plus configured bridges."""
    sys.exit(asyncio.run(_ask(args)))


def cmd_tools(args: argparse.Namespace) -> None:
    """List the tools each configured provider exposes."""
    sys.exit(asyncio.run(_tools(args)))


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="quix",
        description="Quix CLI - Route requests to tools through an LLM",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    ask_parser = subparsers.add_parser("ask", help="Answer a single message")
    ask_parser.add_argument("message", help="The user message")
    ask_parser.add_argument(
        "--bridges",
        "-b",
        help="YAML file with an mcp: block of tool servers (default: $QUIX_BRIDGES)",
    )
    ask_parser.add_argument("--model", "-m", help="Model name (default: $QUIX_MODEL or gpt-4o)")
    ask_parser.add_argument(
        "--history",
        help="JSON file with prior conversation messages",
    )
    ask_parser.add_argument("--author", help="Name of the user asking")
    ask_parser.add_argument(
        "--max-cycles",
        type=int,
        help="Maximum model cycles for the execution loop",
    )
    ask_parser.add_argument(
        "--show-tools",
        action="store_true",
        help="Print the tool-call log as JSON after the answer",
    )
    ask_parser.set_defaults(func=cmd_ask)

    tools_parser = subparsers.add_parser("tools", help="List discovered tools per provider")
    tools_parser.add_argument("--bridges", "-b", help="YAML file with an mcp: block")
    tools_parser.set_defaults(func=cmd_tools)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    _configure_logging(os.environ.get("QUIX_LOG_LEVEL", "info"), args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
