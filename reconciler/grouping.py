from dataclasses import dataclass, field

from reconciler.coercion import best_effort_number, parse_float, parse_int
from reconciler.filtering import partition_rows, select_rows


@dataclass
class Group:
    """Rows sharing a unique key, with their combined row."""

    key: object
    combined: dict
    sub_rows: list = field(default_factory=list)

    @property
    def is_combined(self):
        return bool(self.sub_rows)


def first_seen_mode(values):
    """Most frequent value; on ties, the value that first reached the top count."""
    counts = {}
    max_count = 0
    mode = None
    for value in values:
        counts[value] = counts.get(value, 0) + 1
        if counts[value] > max_count:
            max_count = counts[value]
            mode = value
    return mode


def combine_rows(rows, schema):
    """
    Merge rows sharing a unique key into one row, column by column.

    Aggregation by data_type:
        unique            first value
        currency, float   sum of best-effort numbers
        rate              mean of the parseable values (0 if none)
        integer           mode of the parseable integers (first to reach the top count)
        strings           values joined with ", "
        anything else     first value
    """
    combined = {}
    for col in schema.columns:
        values = [row.get(col.id) for row in rows]
        data_type = col.data_type

        if data_type in ('currency', 'float'):
            combined[col.id] = sum(best_effort_number(v) for v in values)
        elif data_type == 'rate':
            numbers = [n for n in (parse_float(v) for v in values) if n is not None]
            combined[col.id] = sum(numbers) / len(numbers) if numbers else 0
        elif data_type == 'integer':
            integers = [n for n in (parse_int(v) for v in values) if n is not None]
            combined[col.id] = first_seen_mode(integers)
        elif data_type == 'strings':
            combined[col.id] = ', '.join('' if v is None else str(v) for v in values)
        else:
            # unique, date and any undeclared type keep the first value
            combined[col.id] = values[0]
    return combined


def group_rows(rows, schema):
    """
    Group selected rows by the unique column and combine duplicates.

    Args:
        rows: Rows already passed through select_rows.
        schema: Schema with the unique column.

    Returns:
        list of Group in first-seen key order. Single rows are their own
        combined row and have no sub-rows.
    """
    unique_col = schema.unique_column()
    if unique_col is None:
        return [Group(key=None, combined=row) for row in rows]

    groups = []
    for key, members in partition_rows(rows, unique_col.id).items():
        if len(members) == 1:
            groups.append(Group(key=key, combined=members[0]))
        else:
            groups.append(Group(key=key, combined=combine_rows(members, schema), sub_rows=members))

    merged = sum(1 for g in groups if g.is_combined)
    print(f"[GROUP] {len(groups)} groups from {len(rows)} rows ({merged} combined)")
    return groups


def build_groups(rows, schema):
    """Filter then group a row set; without a unique column every row is its own group."""
    if schema.unique_column() is None:
        return [Group(key=None, combined=row) for row in rows]
    return group_rows(select_rows(rows, schema), schema)


def compute_totals(combined_rows, schema):
    """
    Whole-sheet totals row over the groups' combined rows.

    currency and float columns are summed, rate columns averaged, integer
    columns reduced to their mode; every other column is blank (""), as are
    rate and integer columns without any parseable value.
    """
    totals = {}
    for col in schema.columns:
        values = [row.get(col.id) for row in combined_rows]
        data_type = col.data_type

        if data_type in ('currency', 'float'):
            totals[col.id] = sum(best_effort_number(v) for v in values)
        elif data_type == 'rate':
            numbers = [n for n in (parse_float(v) for v in values) if n is not None]
            totals[col.id] = sum(numbers) / len(numbers) if numbers else ''
        elif data_type == 'integer':
            integers = [n for n in (parse_int(v) for v in values) if n is not None]
            totals[col.id] = first_seen_mode(integers) if integers else ''
        else:
            totals[col.id] = ''
    return totals
