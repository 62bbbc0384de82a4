"""
Value coercion helpers shared by the evaluator, filters and statistics.

Source cells arrive as strings (or numbers when a file reader already typed
them), so every component needs the same answers to "is this a number" and
"is this a date". The rules below follow the loose conventions of the sheet
formats the schemas were written for:

    - parse_float: leading numeric prefix ("12abc" -> 12.0), else None
    - best_effort_number: parse_float(value) or 0
    - parse_int: leading integer prefix ("20.7" -> 20), else None
    - to_number: whole-string numeric conversion ("" -> 0.0), else nan
"""

import math
import re
from datetime import date, datetime, timedelta

EPOCH = date(1970, 1, 1)

_FLOAT_PREFIX = re.compile(r'^[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')
_INT_PREFIX = re.compile(r'^[+-]?\d+')

# Strict formats accepted when classifying a raw column value as a date
_STRICT_DATE_PATTERNS = [
    (re.compile(r'^\d{4}-\d{2}-\d{2}$'), '%Y-%m-%d'),
    (re.compile(r'^\d{1,2}/\d{1,2}/\d{4}$'), '%m/%d/%Y'),
    (re.compile(r'^\d{4}/\d{2}/\d{2}$'), '%Y/%m/%d'),
]

# Looser formats accepted when a value is already known to be a date
_DATE_FORMATS = [
    '%Y-%m-%d',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%d %H:%M:%S',
    '%m/%d/%Y',
    '%Y/%m/%d',
]


def _is_nan(value):
    return isinstance(value, float) and math.isnan(value)


def parse_float(value):
    """Parse the leading numeric prefix of a value, returning None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = float(value)
        return None if math.isnan(value) else value
    match = _FLOAT_PREFIX.match(str(value).lstrip())
    if not match:
        return None
    text = match.group(0)
    if text.endswith('Infinity'):
        return -math.inf if text.startswith('-') else math.inf
    return float(text)


def best_effort_number(value):
    """
    Best-effort numeric coercion: parse_float(value), with every failure mapped to 0.

    Missing cells, text, and nan all silently become 0. Function arguments and
    formula substitutions go through this policy, so a typo in a source file
    shows up as a zero rather than an error.
    """
    number = parse_float(value)
    return number if number else 0.0


def parse_int(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, int):
        return value
    match = _INT_PREFIX.match(str(value).lstrip())
    return int(match.group(0)) if match else None


def to_number(value):
    """Convert a whole value to a number, returning nan when it is not numeric."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text == '':
        return 0.0
    if text in ('Infinity', '+Infinity'):
        return math.inf
    if text == '-Infinity':
        return -math.inf
    # float() also accepts "nan", "inf" and digit separators, which are not numbers here
    if not re.match(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$', text):
        if re.match(r'^0[xX][0-9a-fA-F]+$', text):
            return float(int(text, 16))
        return math.nan
    return float(text)


def is_numeric(value):
    return not math.isnan(to_number(value))


def is_date_string(value):
    """Check whether a raw value is a date in one of the strict column formats."""
    if not isinstance(value, str):
        return False
    stripped = value.strip().strip('\'"')
    for pattern, fmt in _STRICT_DATE_PATTERNS:
        if pattern.match(stripped):
            try:
                datetime.strptime(stripped, fmt)
                return True
            except ValueError:
                return False
    return False


def parse_date(value):
    """
    Convert a date-like value to a datetime.date.

    Accepts date and datetime objects (pandas Timestamps included) and strings
    in ISO, MM/DD/YYYY or YYYY/MM/DD form. Returns None when the value is
    empty or cannot be read as a calendar date.
    """
    if value is None or _is_nan(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().strip('\'"')
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def days_since_epoch(d):
    return (d - EPOCH).days


def date_from_days(days):
    """Convert a (possibly fractional) day offset from 1970-01-01 back to a date."""
    return EPOCH + timedelta(days=math.floor(days))
