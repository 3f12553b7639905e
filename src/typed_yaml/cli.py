"""Command line tool: load a YAML document against a schema and re-emit it."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from typed_yaml.api import free, load_file, save_bytes
from typed_yaml.config import Config, ConfigFlag, LogLevel
from typed_yaml.errors import TypedYamlError
from typed_yaml.parsing import SchemaParser


def build_config(args: argparse.Namespace) -> Config:
    """Translate command line switches into a Config."""
    flags = ConfigFlag.DEFAULT
    if args.flow:
        flags |= ConfigFlag.STYLE_FLOW
    if args.block:
        flags |= ConfigFlag.STYLE_BLOCK
    if args.delim:
        flags |= ConfigFlag.DOCUMENT_DELIM
    if args.ignore_unknown:
        flags |= ConfigFlag.IGNORE_UNKNOWN_KEYS
    if args.warn_ignored:
        flags |= ConfigFlag.IGNORED_KEY_WARNING
    if args.no_alias:
        flags |= ConfigFlag.NO_ALIAS
    if args.case_insensitive:
        flags |= ConfigFlag.CASE_INSENSITIVE
    level = LogLevel.DEBUG if args.verbose else LogLevel.WARNING
    return Config(flags=flags, log_level=level)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Load a YAML document through a schema and print it back"
    )
    parser.add_argument(
        "schema",
        type=Path,
        help="Path to the schema definition file",
    )
    parser.add_argument(
        "document",
        type=Path,
        help="Path to the YAML document to load",
    )
    parser.add_argument(
        "-c", "--check",
        action="store_true",
        help="Only validate the document; print nothing on success",
    )
    style = parser.add_mutually_exclusive_group()
    style.add_argument(
        "--flow",
        action="store_true",
        help="Emit collections in flow style",
    )
    style.add_argument(
        "--block",
        action="store_true",
        help="Emit collections in block style",
    )
    parser.add_argument(
        "--delim",
        action="store_true",
        help="Emit explicit document start and end markers",
    )
    parser.add_argument(
        "--ignore-unknown",
        action="store_true",
        help="Skip mapping keys that the schema does not describe",
    )
    parser.add_argument(
        "--warn-ignored",
        action="store_true",
        help="Log a warning for each key skipped by --ignore-unknown",
    )
    parser.add_argument(
        "--no-alias",
        action="store_true",
        help="Reject documents that use aliases",
    )
    parser.add_argument(
        "--case-insensitive",
        action="store_true",
        help="Match keys and names without regard to case",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug messages to stderr",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        text = args.schema.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error reading schema: {e}", file=sys.stderr)
        return 1

    try:
        registry = SchemaParser().parse(text)
    except (SyntaxError, ValueError, KeyError) as e:
        print(f"Schema error: {e}", file=sys.stderr)
        return 1

    schema = registry.root
    if schema is None:
        print("Schema error: no root type declared", file=sys.stderr)
        return 1

    config = build_config(args)
    try:
        value, count = load_file(args.document, config, schema)
    except TypedYamlError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if not args.check and value is not None:
            output = save_bytes(config, schema, value, count)
            sys.stdout.write(output.decode("utf-8"))
    except TypedYamlError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        free(config, schema, value)

    return 0


if __name__ == "__main__":
    sys.exit(main())
