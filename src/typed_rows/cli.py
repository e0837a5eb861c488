"""Command line entry point: inspect mapped types and filter text."""

from __future__ import annotations

import argparse
import importlib
import sys

from typed_rows.errors import ORMError
from typed_rows.expressions import Expression, walk
from typed_rows.logging_config import configure_logging
from typed_rows.parsing import parse_filter
from typed_rows.schema import extract_metadata
from typed_rows.types import TableMetadata


def load_class(target: str) -> type:
    """Import ``package.module:ClassName`` and return the class."""
    module_name, sep, class_name = target.partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"Expected 'module:Class', got {target!r}")
    module = importlib.import_module(module_name)
    obj = module
    for part in class_name.split("."):
        obj = getattr(obj, part)
    if not isinstance(obj, type):
        raise ValueError(f"{target} is not a class")
    return obj


def format_metadata(metadata: TableMetadata) -> str:
    """Render table metadata as an aligned column listing."""
    lines = [f"Table: {metadata.table_name}", f"Primary key: {metadata.primary_key.name}", ""]
    header = ("Column", "Property", "Type", "Length", "Precision", "Nullable")
    rows = [header]
    for col in metadata.columns:
        rows.append(
            (
                col.name + (" *" if col.primary_key else ""),
                col.attribute,
                col.data_type.value,
                "" if col.max_length is None else str(col.max_length),
                "" if col.precision is None else str(col.precision),
                "yes" if col.nullable else "no",
            )
        )
    widths = [max(len(row[i]) for row in rows) for i in range(len(header))]
    for row in rows:
        lines.append("  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
    return "\n".join(lines)


def format_tree(expr: Expression) -> str:
    """Render an expression tree one node per line, indented by depth."""
    depths = {id(expr): 0}
    lines = []
    for node in walk(expr):
        depth = depths[id(node)]
        for term in (node.left, node.right):
            if isinstance(term, Expression):
                depths[id(term)] = depth + 1
        if node.operator.is_logical:
            lines.append("  " * depth + node.operator.value)
        else:
            lines.append("  " * depth + str(node))
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        prog="typed-rows",
        description="Inspect typed_rows table mappings and filter expressions",
    )
    arg_parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (defaults to TYPED_ROWS_LOG_LEVEL or WARNING)",
    )
    subparsers = arg_parser.add_subparsers(dest="command", required=True)

    describe = subparsers.add_parser("describe", help="Print the table metadata of a mapped type")
    describe.add_argument("target", help="Mapped type as 'module:Class'")

    parse = subparsers.add_parser("parse", help="Parse filter text and print the expression tree")
    parse.add_argument("filter", help='Filter text, e.g. \'age >= 18 and name startswith "A"\'')
    parse.add_argument(
        "--flat",
        action="store_true",
        help="Print the expression on one line",
    )

    args = arg_parser.parse_args(argv)

    try:
        configure_logging(args.log_level)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "describe":
        try:
            cls = load_class(args.target)
        except (ImportError, AttributeError, ValueError) as e:
            print(f"Error: Cannot load {args.target}: {e}", file=sys.stderr)
            return 1
        try:
            metadata = extract_metadata(cls)
        except ORMError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(format_metadata(metadata))
        return 0

    try:
        expr = parse_filter(args.filter)
    except ORMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(str(expr) if args.flat else format_tree(expr))
    return 0


if __name__ == "__main__":
    sys.exit(main())
