#!/usr/bin/env python3
"""
HAR Analyzer CLI

Load a HAR capture once, then inspect it through short follow-up commands
that share a persisted session.

Usage:
    python analyze_har.py load capture.har
    python analyze_har.py list --status 4xx --domain api.example.com
    python analyze_har.py show e14 --raw --section body
    python analyze_har.py expand e14.response.body
    python analyze_har.py search "session_id" --scope header
    python analyze_har.py analyze errors
    python analyze_har.py diff e3 e7
    python analyze_har.py cookies
    python analyze_har.py export --domain example.com --sanitize -o subset.har
    python analyze_har.py serve
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from har_analyzer.adapter import HarAnalyzerAdapter
from har_analyzer.config import HarAnalyzerConfig
from har_analyzer.errors import HarAnalyzerError
from har_analyzer.export import build_export
from har_analyzer.formatter import format_sessions
from har_analyzer.models import EntryFilter
from har_analyzer.query import filter_entries, parse_entry_index
from har_analyzer.server import HarToolServer
from har_analyzer.session import SessionManager, atomic_write_text

logger = logging.getLogger(__name__)


# ============================================================================
# LOGGING SETUP
# ============================================================================

def setup_logging(level: str) -> None:
    # stdout is reserved for command output (and protocol messages in serve)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


# ============================================================================
# ARGUMENT PARSING
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Inspect HAR captures with bounded, token-friendly output',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python analyze_har.py load capture.har
  python analyze_har.py list --status 5xx
  python analyze_har.py show e3 --raw --section headers
        """
    )
    parser.add_argument(
        '--session',
        type=str,
        default=None,
        help='Session id (or prefix) to use instead of the most recent one'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Verbose logging to stderr'
    )

    commands = parser.add_subparsers(dest='command', metavar='<command>')
    commands.required = True

    load = commands.add_parser('load', help='Load a HAR file and show the dashboard')
    load.add_argument('file', type=str, help='Path to the HAR file')

    commands.add_parser('overview', help='Show the dashboard of the loaded HAR')

    list_cmd = commands.add_parser('list', help='List entries with optional filters')
    add_filter_arguments(list_cmd)
    list_cmd.add_argument('--method', type=str, default=None, help='HTTP method(s), comma-separated')
    list_cmd.add_argument('--url', type=str, default=None, help='Case-sensitive URL substring')
    list_cmd.add_argument('--limit', type=int, default=None, help='Maximum entries to show')

    show = commands.add_parser('show', help='Show entry detail (summary, or full with --raw)')
    show.add_argument('entry', type=str, help='Entry reference, e.g. e14 or 14')
    show.add_argument('--raw', action='store_true', help='Show full headers/bodies')
    show.add_argument('--section', choices=['headers', 'body', 'cookies'], default=None,
                      help='Section to show in raw mode')
    show.add_argument('--full', action='store_true', help='Bypass truncation and refs')

    expand = commands.add_parser('expand', help='Expand a ref id to its full content')
    expand.add_argument('ref', type=str, help='Ref id, e.g. e14.response.body')

    search = commands.add_parser('search', help='Search URLs, headers, and bodies')
    search.add_argument('query', type=str, help='Text to search for (case-insensitive)')
    search.add_argument('--scope', choices=['url', 'header', 'body', 'all'], default='all',
                        help='Search scope (default: all)')
    search.add_argument('--domain', type=str, default=None, help='Restrict to a domain or glob')
    search.add_argument('--limit', type=int, default=20, help='Maximum matches (default: 20)')

    analyze = commands.add_parser('analyze', help='Run an analysis')
    analyze.add_argument('type', type=str, help='Analysis type: errors, security')

    export = commands.add_parser('export', help='Export a filtered/sanitized HAR subset')
    add_filter_arguments(export)
    export.add_argument('--sanitize', action='store_true', help='Redact sensitive values')
    export.add_argument('--strip-bodies', action='store_true', help='Remove body content')
    export.add_argument('-o', '--output', type=str, default=None,
                        help='Write the subset to this file (without it, only the plan is shown)')

    commands.add_parser('domains', help='List domains by request count')

    diff = commands.add_parser('diff', help='Compare two entries side by side')
    diff.add_argument('entry1', type=str, help='First entry reference, e.g. e3')
    diff.add_argument('entry2', type=str, help='Second entry reference, e.g. e7')

    commands.add_parser('cookies', help='Track cookie flow across requests')
    commands.add_parser('sessions', help='List persisted sessions')
    commands.add_parser('serve', help='Serve the operations as JSON-RPC tools on stdio')

    return parser


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--domain', type=str, default=None, help='Domain: exact hostname, or glob like *.example.com')
    parser.add_argument('--status', type=str, default=None, help='Status: 200, 4xx, 200,304, !3xx')


def drop_none(values: dict) -> dict:
    return {key: value for key, value in values.items() if value is not None}


# CLI subcommands named differently from their adapter operation
COMMAND_OPERATIONS = {
    'show': 'detail',
}


# ============================================================================
# COMMANDS
# ============================================================================

def operation_arguments(args: argparse.Namespace) -> dict:
    """Map parsed CLI arguments to adapter operation arguments."""
    if args.command == 'load':
        return {'file': args.file}
    if args.command == 'list':
        return drop_none({'domain': args.domain, 'status': args.status, 'method': args.method,
                          'url': args.url, 'limit': args.limit})
    if args.command == 'show':
        return drop_none({'entry': parse_entry_index(args.entry), 'raw': args.raw,
                          'section': args.section, 'full': args.full})
    if args.command == 'expand':
        return {'ref': args.ref}
    if args.command == 'search':
        return drop_none({'query': args.query, 'scope': args.scope, 'domain': args.domain,
                          'limit': args.limit})
    if args.command == 'analyze':
        return {'type': args.type}
    if args.command == 'diff':
        return {'entry1': parse_entry_index(args.entry1), 'entry2': parse_entry_index(args.entry2)}
    if args.command == 'export':
        return drop_none({'domain': args.domain, 'status': args.status, 'sanitize': args.sanitize,
                          'stripBodies': args.strip_bodies})
    return {}


def write_export(adapter: HarAnalyzerAdapter, args: argparse.Namespace) -> str:
    """Write the export subset to args.output and describe what was written."""
    plan = adapter.run('export', operation_arguments(args))
    session = adapter.session
    entries = filter_entries(session.entries, EntryFilter(domain=args.domain, status=args.status))
    har_data = adapter.sessions.load_capture(session)
    exported = build_export(har_data, entries, sanitize=args.sanitize, strip_bodies=args.strip_bodies)

    output_path = Path(args.output).expanduser().resolve()
    if output_path == Path(session.source_file):
        raise HarAnalyzerError("Refusing to overwrite the loaded capture; choose another output file.")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(output_path, json.dumps(exported, indent=2, ensure_ascii=False))

    logger.info(f"Exported {len(entries)} entries to {output_path}")
    return f"{plan.splitlines()[0]}\nWrote {len(entries)} entries to {output_path}"


def run_command(args: argparse.Namespace, config: HarAnalyzerConfig) -> str:
    sessions = SessionManager(config.sessions_dir, ttl_hours=config.session_ttl_hours)
    adapter = HarAnalyzerAdapter(sessions, config, session_id=args.session)

    if args.command == 'serve':
        HarToolServer(adapter).serve()
        return ''
    if args.command == 'sessions':
        current = sessions.load_session(args.session) if args.session else None
        return format_sessions(sessions.list_sessions(), time.time(),
                               current.session_id if current else None)
    if args.command == 'export' and args.output:
        return write_export(adapter, args)
    operation = COMMAND_OPERATIONS.get(args.command, args.command)
    return adapter.run(operation, operation_arguments(args))


# ============================================================================
# MAIN
# ============================================================================

def main(argv=None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = HarAnalyzerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging('DEBUG' if args.verbose else config.log_level)

    try:
        output = run_command(args, config)
    except HarAnalyzerError as e:
        print(str(e), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if output:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
