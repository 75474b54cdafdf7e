#!/usr/bin/env python3

import argparse
import logging
from collections.abc import Sequence


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Receipt parsing CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  extract <text-file>        Run heuristic extraction on OCR text
  validate <json-file>       Validate a normalized receipt JSON document
  scan <image>               Preprocess + OCR an image, then extract
  run <message>              Run one parse job for a queue message (JSON or @file)
  serve [--host] [--port]    Start the queue push endpoint

Configuration:
  config/receiptwright.toml, overridden by RECEIPTWRIGHT_* environment variables
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    extract_parser = subparsers.add_parser("extract", help="Run heuristic extraction on OCR text")
    extract_parser.add_argument("text_file", help="Path to OCR text ('-' for stdin)")

    validate_parser = subparsers.add_parser("validate", help="Validate a normalized receipt JSON document")
    validate_parser.add_argument("json_file", help="Path to normalized receipt JSON")

    scan_parser = subparsers.add_parser("scan", help="Preprocess + OCR an image, then extract")
    scan_parser.add_argument("image", help="Path to receipt image")

    run_parser = subparsers.add_parser("run", help="Run one parse job for a queue message")
    run_parser.add_argument("message", help="Message JSON, or @path to a file containing it")

    serve_parser = subparsers.add_parser("serve", help="Start the queue push endpoint")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=8080, help="Port to bind to (default: 8080)")

    args = parser.parse_args(argv)

    if args.verbose:
        from receiptwright.runtime.logging import configure_logging, set_log_level

        configure_logging(logging.DEBUG)
        set_log_level(logging.DEBUG)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "extract":
        from receiptwright.cli.receipt import cmd_extract

        return cmd_extract(args)
    elif args.command == "validate":
        from receiptwright.cli.receipt import cmd_validate

        return cmd_validate(args)
    elif args.command == "scan":
        from receiptwright.cli.receipt import cmd_scan

        return cmd_scan(args)
    elif args.command == "run":
        from receiptwright.cli.receipt import cmd_run

        return cmd_run(args)
    elif args.command == "serve":
        from receiptwright.cli.receipt import cmd_serve

        return cmd_serve(args)

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
