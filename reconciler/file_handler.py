import csv
import os
from concurrent.futures import ThreadPoolExecutor, as_completed

import pandas as pd

from reconciler.coercion import parse_float, parse_int
from reconciler.mapping import rows_from_table


def _field_counts(path, encoding):
    """Number of fields on each non-blank data line of a CSV file."""
    with open(path, 'r', encoding=encoding, newline='') as f:
        counts = [len(line) for line in csv.reader(f, skipinitialspace=True) if line]
    return counts[1:]


def read_table(path):
    """
    Read one CSV or Excel file into (headers, values).

    CSV files are tried with several encodings to handle international
    characters. Every cell is read as text; empty cells become "". Cells
    missing from a CSV line shorter than the header become None.

    Raises:
        ValueError: If a CSV file cannot be decoded with any supported encoding.
    """
    filename = os.path.basename(path)

    if not path.lower().endswith('.csv'):
        df = pd.read_excel(path, dtype=str, keep_default_na=False)
        return list(df.columns), df.values.tolist()

    encodings = ['utf-8', 'utf-8-sig', 'latin-1', 'cp1252', 'iso-8859-1']
    df = None
    for enc in encodings:
        try:
            df = pd.read_csv(path, encoding=enc, dtype=str, keep_default_na=False, skipinitialspace=True)
            print(f"[LOAD] {filename} loaded with encoding: {enc}")
            break
        except (UnicodeDecodeError, LookupError):
            continue
    if df is None:
        raise ValueError(f"Could not load {filename} with any supported encoding")

    headers = list(df.columns)
    values = df.values.tolist()

    # pandas pads short lines with "", which would read as a real empty cell
    counts = _field_counts(path, enc)
    if len(counts) != len(values):
        print(f"[WARN] {filename}: could not match line lengths to rows, short lines kept as read")
        return headers, values
    for line, count in zip(values, counts):
        if count < len(headers):
            line[count:] = [None] * (len(headers) - count)
    return headers, values


def load_source_files(file_paths, progress_callback=None):
    """
    Load every file of every source in parallel (multi-threaded).

    Args:
        file_paths: dict mapping source name to a list of file paths.
        progress_callback: Optional callable(current_idx, total, filename).

    Returns:
        dict mapping source name to the list of its rows (tagged with
        '__source'), in the order the files were listed.

    Raises:
        ValueError: If no files were given, or a file cannot be decoded.
    """
    jobs = [(source, idx, path) for source, paths in file_paths.items() for idx, path in enumerate(paths)]
    if not jobs:
        raise ValueError("No source files selected.")

    def load_single_file(source, idx, path):
        """Load a single file - can be called in parallel."""
        headers, values = read_table(path)
        return source, idx, os.path.basename(path), rows_from_table(headers, values, source)

    results = {}
    completed = 0
    total = len(jobs)
    print(f"[LOAD] Starting parallel load of {total} files with {os.cpu_count()} workers...")
    with ThreadPoolExecutor(max_workers=os.cpu_count()) as executor:
        futures = [executor.submit(load_single_file, *job) for job in jobs]

        # Nothing is returned until every pending file has been read
        for future in as_completed(futures):
            source, idx, filename, rows = future.result()
            completed += 1
            if progress_callback:
                progress_callback(completed, total, filename)
            print(f"[LOAD] Completed {completed}/{total}: {filename} ({len(rows)} rows, source '{source}')")
            results[(source, idx)] = rows

    rows_by_source = {}
    for source, idx, _path in jobs:
        rows_by_source.setdefault(source, []).extend(results[(source, idx)])
    return rows_by_source


# Excel number formats per data_type; other types are written as read
NUMBER_FORMATS = {
    'currency': '$#,##0.00',
    'rate': '0.00%',
    'float': '0.00',
    'integer': '0',
}


def _export_value(value, data_type):
    """Numeric columns are written as numbers so the column format applies."""
    if value is None or value == '':
        return None
    if data_type in ('currency', 'rate', 'float'):
        number = parse_float(value)
        return value if number is None else number
    if data_type == 'integer':
        number = parse_int(value)
        return value if number is None else number
    return value


def _sheet_frame(rows, schema):
    """Rows as a DataFrame with the schema headings as columns."""
    return pd.DataFrame(
        [[_export_value(row.get(col.id), col.data_type) for col in schema.columns] for row in rows],
        columns=[col.heading for col in schema.columns],
    )


def _apply_number_formats(writer, sheet_name, schema, first_col=0):
    workbook = writer.book
    worksheet = writer.sheets[sheet_name]
    for idx, col in enumerate(schema.columns):
        num_format = NUMBER_FORMATS.get(col.data_type)
        if num_format:
            worksheet.set_column(first_col + idx, first_col + idx, 14, workbook.add_format({'num_format': num_format}))


def export_to_file(groups, totals, schema, path, errors=None):
    """
    Export the reconciled sheet.

    Sheet layout (.xlsx):
        - "Results": one combined row per group, then the totals row.
        - "Details": the member rows of every combined group, keyed by group.
        - "Errors": the error channel, when there are errors.

    Currency, rate, float and integer columns carry Excel number formats
    ($ with cents, percent with 2 decimals, 2 decimals, whole number).

    A .csv path receives the "Results" table only, unformatted.

    Args:
        groups: list of Group from grouping.build_groups.
        totals: Totals row from grouping.compute_totals.
        schema: Schema giving column order and headings.
        path: Output file path.
        errors: Optional list of CellError.
    """
    results = _sheet_frame([g.combined for g in groups] + [totals], schema)

    if path.lower().endswith('.csv'):
        results.to_csv(path, index=False)
        print(f"[EXPORT] Results written to {path} ({len(groups)} rows + totals)")
        return

    with pd.ExcelWriter(path, engine='xlsxwriter') as writer:
        results.to_excel(writer, sheet_name='Results', index=False)
        _apply_number_formats(writer, 'Results', schema)

        detail_rows = [row for g in groups for row in g.sub_rows]
        if detail_rows:
            details = _sheet_frame(detail_rows, schema)
            details.insert(0, 'Group', [g.key for g in groups for _row in g.sub_rows])
            details.to_excel(writer, sheet_name='Details', index=False)
            _apply_number_formats(writer, 'Details', schema, first_col=1)
            print(f"[EXPORT] Details sheet written ({len(detail_rows)} rows)")

        if errors:
            error_df = pd.DataFrame(
                [[e.row_index + 1, e.column_heading, e.kind, e.message] for e in errors],
                columns=['Row', 'Column', 'Kind', 'Message'],
            )
            error_df.to_excel(writer, sheet_name='Errors', index=False)
            print(f"[EXPORT] Errors sheet written ({len(errors)} rows)")

    print(f"[EXPORT] Results written to {path}")
