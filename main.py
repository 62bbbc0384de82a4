"""
Reconcile source files against a sheet schema and export the result.

Usage:
    python main.py schema.json --source loan=loans.csv --source checking=dda.csv
    python main.py schema.json --source loan=q1.csv --source loan=q2.csv -o sheet.xlsx --as-of 2024-06-30
"""

import argparse
import sys
import traceback

from reconciler.coercion import parse_date
from reconciler.computation import process_sources
from reconciler.config import load_config
from reconciler.data_model import DataModel
from reconciler.file_handler import export_to_file, load_source_files
from reconciler.functions import create_default_registry
from reconciler.grouping import build_groups, compute_totals
from reconciler.schema import load_schema


def parse_sources(pairs):
    """Turn ["loan=a.csv", "loan=b.csv"] into {"loan": ["a.csv", "b.csv"]}."""
    file_paths = {}
    for pair in pairs:
        source, sep, path = pair.partition('=')
        if not sep or not source or not path:
            raise ValueError(f"Invalid --source '{pair}', expected NAME=PATH")
        file_paths.setdefault(source.strip(), []).append(path.strip())
    return file_paths


def run(args):
    config = load_config(args.config)
    as_of = None
    if args.as_of:
        as_of = parse_date(args.as_of)
        if as_of is None:
            raise ValueError(f"Invalid --as-of date '{args.as_of}'")

    schema = load_schema(args.schema)
    model = DataModel(schema, config=config, as_of=as_of)
    registry = create_default_registry(model)

    for problem in schema.validate(registry.names()):
        print(f"[WARN] Schema: {problem}")

    model.file_paths = parse_sources(args.source)
    rows_by_source = load_source_files(model.file_paths)

    # Each source is processed as its own batch, in command-line order
    for source, rows in rows_by_source.items():
        model.add_rows(rows)
        process_sources(model, source, registry=registry)

    unknown = [s for s in model.sources() if s not in schema.data_sources()]
    if unknown:
        print(f"[WARN] Sources not declared in the schema: {unknown}")

    for error in model.errors:
        print(f"[ERROR] {error}")

    groups = build_groups(model.rows, schema)
    totals = compute_totals([g.combined for g in groups], schema)

    output = args.output or f"{model.sheet_name or 'sheet'}.xlsx"
    export_to_file(groups, totals, schema, output, errors=model.errors)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Reconcile tabular sources against a column schema.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("schema", help="Schema JSON document ({sheetName, columnsConfig})")
    parser.add_argument(
        "--source", action="append", default=[], metavar="NAME=PATH",
        help="Source file for a schema source name (repeatable)",
    )
    parser.add_argument("-o", "--output", help="Output .xlsx or .csv path (default: <sheetName>.xlsx)")
    parser.add_argument("--config", help="JSON config overriding the defaults")
    parser.add_argument("--as-of", help="Reference date for maturity calculations (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    if not args.source:
        parser.error("at least one --source is required")

    try:
        return run(args)
    except Exception as e:
        print("ERROR:", str(e))
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
