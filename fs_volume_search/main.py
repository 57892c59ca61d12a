#!/usr/bin/env python3

import sys
import logging
import argparse
from typing import Iterable, List, Optional, TextIO

from .config.config import BACKEND_NAMES, load_config
from .config.logging import configure_logging
from .display import NullProgressDisplay, ProgressDisplay
from .errors import ConfigurationError, EmptyPatternError, InvalidPatternError
from .events import ScanEventLog
from .scanner import VolumeSearch
from .utils.search_stats import SearchStats
from .volumes import VolumeEnumerator, eligible_volumes

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Search every mounted volume for files whose name matches a regular expression',
        prog='fs-volume-search',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Find PDF reports on every volume
  %(prog)s search '^report.*\\.pdf$'

  # Use the thread pool backend, two volumes at a time, write matches to a file
  %(prog)s search '\\.iso$' --backend pool --max-concurrent 2 --output isos.txt

  # Show the volumes that would be scanned
  %(prog)s list
""")
    parser.add_argument('--config', type=str, default=None,
                        help='Path to configuration file (default: search standard locations)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    search = subparsers.add_parser('search', help='Search all volumes')
    search.add_argument('pattern', help='Regular expression matched against file base names')
    group = search.add_argument_group('search options')
    group.add_argument('--backend', choices=BACKEND_NAMES, metavar='NAME',
                       help='Execution backend: auto, fanout or pool. Overrides config')
    group.add_argument('--max-concurrent', type=int, metavar='N',
                       help='Maximum number of volumes scanned at once. Overrides config')
    group.add_argument('--case-sensitive', action='store_true',
                       help='Match names case-sensitively')
    group.add_argument('--output', type=str, metavar='FILE',
                       help='Write matches to FILE instead of stdout')
    group.add_argument('--no-progress', action='store_true',
                       help='Do not show the live progress display')

    listing = subparsers.add_parser('list', help='List volumes')
    listing.add_argument('--all', action='store_true',
                         help='Include pseudo and duplicate filesystems')
    return parser

def write_matches(matches: Iterable[str], stream: TextIO) -> int:
    count = 0
    for path in matches:
        stream.write(f"{path}\n")
        count += 1
    return count

def export_matches(matches: List[str], output: Optional[str]) -> None:
    """Hand the merged match list to the export sink (stdout or a file)."""
    if output:
        with open(output, 'w', encoding='utf-8') as f:
            count = write_matches(matches, f)
        logger.info(f"Wrote {count:,} matches to {output}")
    else:
        write_matches(matches, sys.stdout)
        sys.stdout.flush()

def run_search(args, config) -> int:
    search_config = config.setdefault('search', {})
    if args.backend:
        search_config['backend'] = args.backend
    if args.max_concurrent is not None:
        if args.max_concurrent < 1:
            logger.error("--max-concurrent must be at least 1")
            return EXIT_USAGE
        search_config['max_concurrent'] = args.max_concurrent
    if args.case_sensitive:
        search_config['ignore_case'] = False

    search = VolumeSearch(
        config,
        event_log=ScanEventLog(),
        display=NullProgressDisplay() if args.no_progress else ProgressDisplay(),
    )
    try:
        report = search.run(args.pattern)
    except EmptyPatternError as e:
        logger.error(f"{e}; nothing to search for")
        return EXIT_USAGE
    except InvalidPatternError as e:
        logger.error(str(e))
        return EXIT_USAGE

    export_matches(report.matches, args.output)
    SearchStats(report).log_summary()
    return EXIT_OK

def run_list(args, config) -> int:
    volumes = VolumeEnumerator(include_all=args.all).enumerate()
    if not volumes:
        logger.warning("No volumes found")
        return EXIT_OK
    scanned = eligible_volumes(volumes, config.get('volumes', {}).get('include_types', []))
    for volume in volumes:
        marker = '*' if volume in scanned else ' '
        print(f"{marker} {volume.describe()}")
    print(f"\n{len(scanned)} of {len(volumes)} volumes would be scanned (*)")
    return EXIT_OK

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the volume search."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigurationError) as e:
        logging.basicConfig(level=logging.ERROR, format='%(levelname)s - %(message)s')
        logger.error(str(e))
        return EXIT_USAGE

    configure_logging(config)

    try:
        if args.command == 'list':
            return run_list(args, config)
        return run_search(args, config)
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.info("Search interrupted by user")
        return EXIT_ERROR
    except Exception as e:
        logger.error(f"Error in main: {e}", exc_info=True)
        return EXIT_ERROR

if __name__ == '__main__':
    sys.exit(main())
