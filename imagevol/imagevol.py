#!/usr/bin/env python3
"""Volume import tools — CLI entrypoint."""

import argparse

from imagevol.commands.volume import register_volume_command
from imagevol.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Volume import tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log waiter attempts and other debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_volume_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
