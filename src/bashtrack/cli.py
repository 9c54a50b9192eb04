"""Command-line interface for bashtrack."""

import argparse
import json
import logging
import os
import shutil
import sys

from bashtrack.config import (
    add_exclude_pattern,
    load_config,
    remove_exclude_pattern,
)
from bashtrack.exceptions import BashtrackError
from bashtrack.queries import (
    get_stats,
    list_commands,
    prune_history,
    search_commands,
)
from bashtrack.recorder import record_command
from bashtrack.storage import SQLiteStorage

logger = logging.getLogger("bashtrack")

SEPARATOR_WIDTH = 80

# Formatter registry: list of (predicate, formatter) tuples
# Each predicate checks if this formatter can handle the data
# Order matters - first match wins
_FORMATTERS: list[tuple[callable, callable]] = []


def _register_formatter(predicate: callable):
    """Decorator to register a formatter with its predicate."""

    def decorator(formatter: callable):
        _FORMATTERS.append((predicate, formatter))
        return formatter

    return decorator


def _format_command(cmd: dict) -> list[str]:
    ts = (cmd.get("timestamp") or "unknown")[:19].replace("T", " ")
    lines = [
        f"[{cmd['id']}] {ts}",
        f"    Dir: {cmd['directory']}",
        f"    Cmd: {cmd['full_command']}",
    ]
    if cmd.get("words") is not None:
        lines.append(f"    Words: {' | '.join(cmd['words'])}")
    lines.append("")
    return lines


@_register_formatter(lambda d: d.get("status") == "error")
def _format_error(data: dict) -> list[str]:
    return [f"Error: {data.get('reason', 'unknown error')}"]


@_register_formatter(lambda d: "commands" in d and "pattern" in d)
def _format_search(data: dict) -> list[str]:
    lines = [f"Commands matching '{data['pattern']}':", "-" * SEPARATOR_WIDTH]
    for cmd in data["commands"]:
        lines.extend(_format_command(cmd))
    if not data["commands"]:
        lines.append("No commands found matching the pattern.")
    return lines


@_register_formatter(lambda d: "commands" in d and "limit" in d)
def _format_list(data: dict) -> list[str]:
    lines = [f"Recent Commands (limit: {data['limit']})", "-" * SEPARATOR_WIDTH]
    for cmd in data["commands"]:
        lines.extend(_format_command(cmd))
    return lines


@_register_formatter(lambda d: "total_commands" in d)
def _format_stats(data: dict) -> list[str]:
    lines = ["Command Tracking Statistics", "=" * 40, f"Total commands: {data['total_commands']}"]

    if data.get("earliest"):
        lines.append("")
        lines.append(f"Date range: {data['earliest'][:10]} to {data['latest'][:10]}")
        if data.get("average_per_day") is not None:
            lines.append(f"Average per day: {data['average_per_day']:.1f}")

    lines.append("")
    lines.append("Top Directories:")
    for item in data.get("top_directories", []):
        lines.append(f"  {item['directory']}: {item['count']}")

    lines.append("")
    lines.append("Most Used Commands:")
    for item in data.get("top_commands", []):
        lines.append(f"  {item['display']}: {item['count']}")

    lines.append("")
    lines.append("Most Used Words:")
    for item in data.get("top_words", []):
        lines.append(f"  {item['word']}: {item['count']}")
    return lines


@_register_formatter(lambda d: "deleted" in d)
def _format_cleanup(data: dict) -> list[str]:
    return [f"Removed {data['deleted']} commands older than {data['days']} days"]


@_register_formatter(lambda d: "exclude_patterns" in d)
def _format_config(data: dict) -> list[str]:
    lines = ["Current Configuration:", "=" * 30, f"Database: {data['database_path']}"]
    lines.append("")
    lines.append("Exclude Patterns:")
    for i, pattern in enumerate(data["exclude_patterns"], 1):
        lines.append(f"  {i}. {pattern}")
    return lines


@_register_formatter(lambda d: "prompt_command" in d)
def _format_setup(data: dict) -> list[str]:
    return [
        "Bash Command Tracker Setup Instructions",
        "=" * 50,
        "",
        "To start tracking your bash commands, add the following line to your ~/.bashrc file:",
        "",
        data["prompt_command"],
        "",
        "Then reload your bash configuration:",
        "  source ~/.bashrc",
        "",
        "Note: The tool automatically excludes common commands and sensitive patterns.",
        "You can customize exclusions using 'config add-exclude' and 'config remove-exclude'.",
    ]


@_register_formatter(lambda d: "message" in d)
def _format_message(data: dict) -> list[str]:
    return [data["message"]]


def format_output(data: dict, json_output: bool = False) -> str:
    """Format output as JSON or human-readable."""
    if json_output:
        return json.dumps(data, indent=2, default=str)

    # Find matching formatter from registry
    for predicate, formatter in _FORMATTERS:
        if predicate(data):
            return "\n".join(formatter(data))

    # Fallback to JSON if no formatter matches
    return json.dumps(data, indent=2, default=str)


def _open_storage() -> SQLiteStorage:
    config = load_config()
    return SQLiteStorage(config.database_path)


def cmd_record(args):
    """Record a command from the shell prompt hook.

    Never fails the hook: problems are logged to stderr and the
    command is simply not recorded.
    """
    command = " ".join(args.command)
    try:
        config = load_config()
        storage = SQLiteStorage(config.database_path)
    except BashtrackError as e:
        logger.error(f"Error recording command: {e}")
        return

    result = record_command(storage, command, exclusion=config.exclusion_filter())
    if args.json:
        print(format_output(result, True))


def cmd_list(args):
    """List recent commands."""
    storage = _open_storage()
    result = list_commands(
        storage,
        limit=args.limit,
        filter_text=args.filter,
        directory=args.directory,
        include_words=args.words,
    )
    print(format_output(result, args.json))


def cmd_search(args):
    """Search commands by substring."""
    storage = _open_storage()
    result = search_commands(storage, args.pattern, include_words=args.words)
    print(format_output(result, args.json))


def cmd_stats(args):
    """Show command statistics."""
    storage = _open_storage()
    result = get_stats(storage)
    print(format_output(result, args.json))


def cmd_cleanup(args):
    """Remove old commands."""
    storage = _open_storage()
    result = prune_history(storage, days=args.days)
    print(format_output(result, args.json))


def cmd_config_show(args):
    """Show current configuration."""
    config = load_config()
    print(format_output(config.to_dict(), args.json))


def cmd_add_exclude(args):
    """Add an exclude pattern."""
    config = load_config()
    if add_exclude_pattern(config, args.pattern):
        message = f"Added exclude pattern: {args.pattern}"
    else:
        message = f"Pattern '{args.pattern}' already exists"
    print(format_output({"message": message, "pattern": args.pattern}, args.json))


def cmd_remove_exclude(args):
    """Remove an exclude pattern."""
    config = load_config()
    if remove_exclude_pattern(config, args.pattern):
        message = f"Removed exclude pattern: {args.pattern}"
    else:
        message = f"Pattern '{args.pattern}' not found"
    print(format_output({"message": message, "pattern": args.pattern}, args.json))


def cmd_setup(args):
    """Show setup instructions for the Bash prompt hook."""
    executable = shutil.which("bashtrack") or "bashtrack"
    prompt_command = (
        "export PROMPT_COMMAND=\"${PROMPT_COMMAND:+$PROMPT_COMMAND$'\\n'}"
        f"{executable} record \\\"$(history 1 | sed 's/^[ ]*[0-9]*[ ]*//')\\\"\""
    )
    result = {"executable": executable, "prompt_command": prompt_command}
    print(format_output(result, args.json))


def setup_logging(verbose: bool = False):
    """Configure the bashtrack logger once per process."""
    level = logging.DEBUG if verbose or os.environ.get("BASHTRACK_DEBUG") else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    epilog = """
Examples:
  bashtrack list --limit 50             # Last 50 commands
  bashtrack list --filter git -d proj   # git commands run under */proj*
  bashtrack search docker               # Commands mentioning docker
  bashtrack stats                       # Totals and most used commands
  bashtrack cleanup --days 30           # Forget commands older than 30 days

All commands support --json for machine-readable output.
Data location: ~/.bashtrack/commands.db
"""
    parser = argparse.ArgumentParser(
        description="bashtrack - Track and manage bash command history",
        prog="bashtrack",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    # record
    sub = subparsers.add_parser("record", help="Record a command to the database")
    sub.add_argument("command", nargs=argparse.REMAINDER, help="Command text to record")
    sub.set_defaults(func=cmd_record)

    # list
    sub = subparsers.add_parser("list", help="List recent commands")
    sub.add_argument(
        "-l", "--limit", type=int, default=20, help="Number of commands to show (default: 20)"
    )
    sub.add_argument("-f", "--filter", help="Filter commands by substring")
    sub.add_argument("-d", "--directory", help="Filter by directory substring")
    sub.add_argument("-w", "--words", action="store_true", help="Show word breakdown")
    sub.set_defaults(func=cmd_list)

    # search
    sub = subparsers.add_parser("search", help="Search commands by pattern")
    sub.add_argument("pattern", help="Substring to search for")
    sub.add_argument("-w", "--words", action="store_true", help="Show word breakdown")
    sub.set_defaults(func=cmd_search)

    # stats
    sub = subparsers.add_parser("stats", help="Show command statistics")
    sub.set_defaults(func=cmd_stats)

    # cleanup
    sub = subparsers.add_parser("cleanup", help="Remove old commands")
    sub.add_argument(
        "-d",
        "--days",
        type=int,
        default=90,
        help="Remove commands older than this many days (default: 90)",
    )
    sub.set_defaults(func=cmd_cleanup)

    # config
    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)

    sub = config_sub.add_parser("show", help="Show current configuration")
    sub.set_defaults(func=cmd_config_show)

    sub = config_sub.add_parser("add-exclude", help="Add an exclude pattern")
    sub.add_argument("pattern", help="Regular expression to exclude")
    sub.set_defaults(func=cmd_add_exclude)

    sub = config_sub.add_parser("remove-exclude", help="Remove an exclude pattern")
    sub.add_argument("pattern", help="Exact pattern to remove")
    sub.set_defaults(func=cmd_remove_exclude)

    # setup
    sub = subparsers.add_parser("setup", help="Show setup instructions")
    sub.set_defaults(func=cmd_setup)

    return parser


def main(argv: list[str] | None = None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        args.func(args)
    except (BashtrackError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
