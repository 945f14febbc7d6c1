"""
DatasiteSync Client - Main Entry Point

This is the main entry point for the DatasiteSync client application.

Author: DatasiteSync Project
"""

import sys
import argparse


def main(argv=None):
    """
    Main entry point for DatasiteSync client.

    Parses command-line arguments and runs one CLI operation:
    sync, pull, push, whoami, track or untrack.
    """
    parser = argparse.ArgumentParser(
        prog='datasite-sync',
        description='DatasiteSync - Datasite File Synchronization Client'
    )

    parser.add_argument('operation', choices=['sync', 'pull', 'push', 'whoami', 'track', 'untrack'],
                        help='Operation to perform')

    parser.add_argument('paths', nargs='*',
                        help='File paths for track/untrack (e.g. alice@example.org/public/a.txt)')

    parser.add_argument('--config',
                        help='Path to config.json (default: ~/.datasite_sync/config.json)')

    args = parser.parse_args(argv)

    from .cli import run_cli_operation
    return run_cli_operation(args.operation, args.config, args.paths)


if __name__ == '__main__':
    sys.exit(main())
