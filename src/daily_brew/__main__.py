#!/usr/bin/env python3
"""
Daily Brew CLI Entry Point

Run with: python -m daily_brew <command> [args]
"""

import argparse
import json
import sys

from .engine.models import utc_now


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent, default=str))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": utc_now().isoformat(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


# =============================================================================
# Main Entry Point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="daily-brew",
        description="Daily Brew - notification intelligence engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from .cli import simulate, taste

    simulate.register_parsers(subparsers)
    taste.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if not hasattr(args, "func"):
        output_error(
            f"Missing subcommand for: {args.command}",
            error_type="unknown_command",
            hint="Run 'daily-brew --help' for usage",
        )

    try:
        result = args.func(args)

        if isinstance(result, dict) and result:
            output_json(result)

            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
