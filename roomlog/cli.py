#!/usr/bin/env python3
"""
Command-line front end for shared room logs.

Usage:
    # Post to the room of the current directory
    roomlog send "build is green"

    # Read the last 20 messages of another project's room
    roomlog read --project /path/to/project --count 20

    # Keep one label across several invocations
    roomlog --session my-shell send "hello"
"""

import argparse
import asyncio
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import yaml

from roomlog.chat import formatting
from roomlog.chat.manager import ChatManager
from roomlog.core.errors import RoomLogError
from roomlog.identity.store import IdentityStore
from roomlog.utils.config import Config
from roomlog.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="roomlog",
        description="Shared, file-backed message rooms for cooperating processes",
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='YAML configuration file'
    )

    parser.add_argument(
        '--project',
        type=str,
        default=None,
        help='Project path identifying the room (default: current directory)'
    )

    parser.add_argument(
        '--session',
        type=str,
        default=None,
        help='Identity key to reuse a label across invocations (default: per process)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from configuration)'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        default=None,
        choices=['json', 'console'],
        help='Log output format (default: from configuration)'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    read = commands.add_parser('read', help='Read recent messages')
    read.add_argument('--count', type=int, default=None, help='Number of messages (1-100)')
    read.add_argument('--since', type=str, default=None, help='ISO 8601 lower bound')
    read.add_argument('--last-seconds', type=float, default=None, help='Only the last N seconds')

    send = commands.add_parser('send', help='Send a message')
    send.add_argument('message', type=str, help='Message content')
    send.add_argument(
        '--kind',
        type=str,
        default='text',
        choices=['text', 'system', 'command', 'notification'],
        help='Message kind (default: text)'
    )

    search = commands.add_parser('search', help='Search message content')
    search.add_argument('query', type=str, help='Text to look for (case-insensitive)')

    agents = commands.add_parser('agents', help='List recently active agents')
    agents.add_argument(
        '--window',
        type=float,
        default=300,
        help='Activity window in seconds (default: 300)'
    )

    commands.add_parser('heartbeat', help='Signal presence without sending')
    commands.add_parser('stats', help='Show room statistics')

    args = parser.parse_args(argv)

    if args.command == 'read' and args.count is not None and not 1 <= args.count <= 100:
        parser.error('--count must be between 1 and 100')

    return args


async def run_command(args: argparse.Namespace, manager: ChatManager) -> str:
    """
    Execute one command and return its text output.

    Raises:
        ValueError: On invalid input
        RoomLogError: On storage failures
    """
    project = args.project or os.getcwd()

    await manager.initialize()
    label = manager.get_own_label()

    if args.command == 'read':
        if args.since is not None or args.last_seconds is not None:
            entries = await manager.filtered(
                project,
                count=args.count,
                since_timestamp=args.since,
                last_seconds=args.last_seconds,
            )
        else:
            entries = await manager.recent(project, args.count or 10)
        return formatting.format_read(label, entries)

    if args.command == 'send':
        if not args.message.strip():
            raise ValueError('Message cannot be empty')
        await manager.append(project, args.message, kind=args.kind)
        return f"Message sent successfully by {label}"

    if args.command == 'search':
        if not args.query.strip():
            raise ValueError('Search query cannot be empty')
        entries = await manager.search(project, args.query)
        return formatting.format_search(label, args.query, entries)

    if args.command == 'agents':
        labels = await manager.active_labels(project, timedelta(seconds=args.window))
        return formatting.format_labels(label, labels)

    if args.command == 'heartbeat':
        await manager.touch(project)
        return f"Heartbeat sent successfully by {label}"

    if args.command == 'stats':
        stats = await manager.resource_stats(project)
        return formatting.format_stats(label, project, stats)

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = Config(args.config)
        configure_logging(
            log_level=args.log_level or config.get("logging.level", "INFO"),
            log_format=args.log_format or config.get("logging.format", "json"),
        )
    except (ValueError, OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    identity_store = None
    if args.session:
        identity_store = IdentityStore(
            Path(config.get("storage.identity_dir")),
            process_key=f"session-{args.session}",
        )

    manager = ChatManager(config=config, identity_store=identity_store)

    try:
        output = asyncio.run(run_command(args, manager))
    except (RoomLogError, ValueError, OSError) as e:
        logger.debug("Command failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
