import json
import math
import operator
import re
from dataclasses import dataclass

from reconciler.coercion import EPOCH, is_numeric, parse_date, to_number
from reconciler.errors import MalformedFilterLiteral
from reconciler.mapping import SOURCE_KEY

COMPARISON = re.compile(r'^(>=|<=|>|<|==|!=)\s*(.+)$')

_ORDERING = {
    '>': operator.gt,
    '<': operator.lt,
    '>=': operator.ge,
    '<=': operator.le,
}


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strip_quotes(text):
    if len(text) >= 2 and text[0] == text[-1] and text[0] in '\'"':
        return text[1:-1]
    return text


def loose_equals(a, b):
    """
    Equality across numbers and numeric strings: "20" equals 20.

    None only equals None. A number compared with a string compares against
    the string's numeric value (never equal when it has none).
    """
    if a is None or b is None:
        return a is None and b is None
    if _is_number(a) and _is_number(b):
        return float(a) == float(b)
    if _is_number(a) or _is_number(b):
        return to_number(a) == to_number(b)
    return a == b


def _numeric_or_raw(value):
    # Empty cells compare as 0
    if value is None:
        return 0.0
    number = to_number(value)
    return value if math.isnan(number) else number


def _apply(op, lhs, rhs):
    if op == '==':
        return loose_equals(lhs, rhs)
    if op == '!=':
        return not loose_equals(lhs, rhs)
    if lhs is None or rhs is None:
        return False
    try:
        return _ORDERING[op](lhs, rhs)
    except TypeError:
        # number vs text
        return False


def is_group_filter(filter_str):
    filter_str = filter_str.strip()
    return filter_str.startswith('{{') and filter_str.endswith('}}')


def create_condition(filter_str, data_type=None):
    """
    Compile a column filter string into a predicate over a cell value.

    Supported syntaxes, tried in order:

        {{20}}           exact match (group filter); numeric when the value is
        [20, 23, "x"]    membership in a JSON array, numeric first
        > 100, <= 5      comparison (>, <, >=, <=, ==, !=); date-aware for date columns
        20               literal equality

    A missing (None) cell reads as 0 in array and comparison filters, and as
    1970-01-01 in date comparisons. Group and literal filters never match it.

    Args:
        filter_str: The filter as written in the schema.
        data_type: The column's data_type; 'date' enables date comparisons.

    Returns:
        callable(value) -> bool
    """
    filter_str = filter_str.strip()

    if is_group_filter(filter_str):
        inner = filter_str[2:-2].strip()
        if inner and is_numeric(inner):
            expected = to_number(inner)
        else:
            expected = _strip_quotes(inner)
        return lambda value: loose_equals(value, expected)

    if filter_str.startswith('[') and filter_str.endswith(']'):
        try:
            allowed = _parse_array(filter_str)
        except MalformedFilterLiteral as e:
            print(f"[WARN] {e}; filter will match nothing")
            return lambda value: False

        def member(value):
            number = 0.0 if value is None else to_number(value)
            if not math.isnan(number):
                return any(to_number(item) == number for item in allowed)
            return value in allowed

        return member

    match = COMPARISON.match(filter_str)
    if match:
        op = match.group(1)
        expected = _strip_quotes(match.group(2).strip())
        expected_date = parse_date(expected) if data_type == 'date' else None
        expected_value = _numeric_or_raw(expected)

        def compare(value):
            if expected_date is not None:
                row_date = EPOCH if value is None else parse_date(value)
                if row_date is not None:
                    return _apply(op, row_date, expected_date)
            return _apply(op, _numeric_or_raw(value), expected_value)

        return compare

    literal = to_number(filter_str) if is_numeric(filter_str) else filter_str
    return lambda value: loose_equals(value, literal)


def _parse_array(filter_str):
    try:
        allowed = json.loads(filter_str)
    except json.JSONDecodeError as e:
        raise MalformedFilterLiteral(f"Error parsing JSON filter {filter_str!r}: {e}") from e
    if not isinstance(allowed, list):
        raise MalformedFilterLiteral(f"JSON filter {filter_str!r} is not an array")
    return allowed


@dataclass
class ColumnFilter:
    """A compiled schema filter, scoped to the column's source."""

    column_id: str
    condition: object
    source: str = None
    is_group: bool = False

    def applies_to(self, row):
        return not self.source or row.get(SOURCE_KEY) == self.source

    def satisfied_by(self, row):
        return self.condition(row.get(self.column_id))


def compile_filters(schema):
    """
    Compile the schema's filters.

    Returns:
        (group_filters, row_filters): double-brace filters propagate truth to
        the whole group; all others are checked row by row.
    """
    group_filters = []
    row_filters = []
    for col in schema.filtered_columns():
        column_filter = ColumnFilter(
            column_id=col.id,
            condition=create_condition(col.filter, col.data_type),
            source=col.source_name or None,
            is_group=is_group_filter(col.filter),
        )
        if column_filter.is_group:
            group_filters.append(column_filter)
        else:
            row_filters.append(column_filter)
    return group_filters, row_filters


def partition_rows(rows, key_column):
    """Group rows by the value of key_column, keeping first-seen key order."""
    groups = {}
    for row in rows:
        groups.setdefault(row.get(key_column), []).append(row)
    return groups


def select_rows(rows, schema):
    """
    Apply the schema's filters with group truth propagation.

    Rows are grouped by the unique column. A group qualifies when every group
    filter is met by at least one of its rows from the filter's source. From
    qualifying groups, only rows meeting every row filter are kept; a row
    filter scoped to another source does not apply to the row.

    Args:
        rows: list of row dicts.
        schema: Schema with the unique column and filters.

    Returns:
        list of selected rows, grouped in first-seen key order.
    """
    unique_col = schema.unique_column()
    if unique_col is None:
        print("[ERROR] No unique column defined in schema")
        return []

    group_filters, row_filters = compile_filters(schema)
    groups = partition_rows(rows, unique_col.id)

    selected = []
    qualifying = 0
    for members in groups.values():
        qualifies = all(
            any(f.applies_to(row) and f.satisfied_by(row) for row in members)
            for f in group_filters
        )
        if not qualifies:
            continue
        qualifying += 1
        for row in members:
            if all(not f.applies_to(row) or f.satisfied_by(row) for f in row_filters):
                selected.append(row)

    print(f"[FILTER] {qualifying}/{len(groups)} groups qualify, {len(selected)}/{len(rows)} rows selected")
    return selected
