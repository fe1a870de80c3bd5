#!/usr/bin/env python3
"""
Main entry point for the Token Metrics Analyzer.

This script provides a unified interface to the CLI and the example scripts.
"""

import sys
import argparse


def main():
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(
        description="Token Metrics Analyzer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze a token with a reference price
  python main.py cli analyze 0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984 --price 6.5

  # Run the example script
  python main.py example basic

For more information, see README.md
        """
    )

    subparsers = parser.add_subparsers(dest="mode", help="Operation mode")

    cli_parser = subparsers.add_parser("cli", help="Run command-line interface")
    cli_parser.add_argument("args", nargs=argparse.REMAINDER, help="CLI arguments")

    example_parser = subparsers.add_parser("example", help="Run example scripts")
    example_parser.add_argument("script", choices=["basic"], help="Example script to run")

    args = parser.parse_args()

    if not args.mode:
        parser.print_help()
        return

    if args.mode == "cli":
        from token_metrics.interfaces.cli import main as cli_main

        # Modify sys.argv for Click
        sys.argv = ["cli"] + args.args
        cli_main()

    elif args.mode == "example":
        if args.script == "basic":
            from examples.basic_usage import main as basic_main
            basic_main()


if __name__ == "__main__":
    main()
