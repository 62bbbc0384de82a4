import math

import numpy as np
import pandas as pd

from reconciler.coercion import is_date_string, parse_float


def compute_statistics(rows):
    """
    Compute descriptive statistics for every numeric column of a row set.

    Every key of every row is inspected. Values that look like dates
    (YYYY-MM-DD, MM/DD/YYYY, YYYY/MM/DD) are set aside, values with a numeric
    prefix are collected, anything else is ignored. Columns with at least one
    numeric value get a statistics dict:

        min, max, mean, median, mode, variance, stdDeviation,
        twoStdDeviations, threeStdDeviations, sum, count, unique,
        areaMode, nonzeroMin, YTDfactor
        (+ uniqueArray and convexProbability for small discrete columns)

    Variance and deviations are population figures (divisor n).

    Args:
        rows: list of row dicts.

    Returns:
        dict mapping column name to its statistics dict.
    """
    numeric_columns = {}
    date_columns = {}

    for row in rows:
        for key, value in row.items():
            if is_date_string(value):
                date_columns.setdefault(key, []).append(value)
                continue
            number = parse_float(value)
            if number is not None and math.isfinite(number):
                numeric_columns.setdefault(key, []).append(number)

    if date_columns:
        print(f"[STATS] Date columns skipped: {sorted(date_columns)}")

    column_statistics = {}
    for column, values in numeric_columns.items():
        column_statistics[column] = _describe(column, values)

    print(f"[STATS] Computed statistics for {len(column_statistics)} columns over {len(rows)} rows")
    return column_statistics


def _describe(column, values):
    series = pd.Series(values, dtype='float64')
    mean = float(series.mean())
    std = float(series.std(ddof=0))
    area_mode, nonzero_min = calculate_area_mode(values)

    stats = {
        'min': float(series.min()),
        'max': float(series.max()),
        'mean': mean,
        'median': float(series.median()),
        'mode': column_mode(series),
        'areaMode': area_mode,
        'nonzeroMin': nonzero_min,
        'variance': float(series.var(ddof=0)),
        'stdDeviation': std,
        'twoStdDeviations': [mean - 2 * std, mean + 2 * std],
        'threeStdDeviations': [mean - 3 * std, mean + 3 * std],
        'sum': float(series.sum()),
        'count': int(series.count()),
        'unique': int(series.nunique()),
        'YTDfactor': year_to_date_factor(column),
    }

    unique = stats['unique']
    if 4 < unique <= 16 and int(stats['median']) < unique - 1:
        stats['uniqueArray'] = sorted(set(values))
        curve = convex_probability(stats['mode'], unique, stats['uniqueArray'])
        if curve is not None:
            stats['convexProbability'] = curve

    return stats


def column_mode(series):
    """Most frequent value of a Series; ties return every tied value, ascending."""
    modes = [float(m) for m in pd.Series(series).mode().tolist()]
    if not modes:
        return None
    return modes[0] if len(modes) == 1 else modes


def calculate_area_mode(values):
    """
    Mode of the values after rounding to the magnitude of the smallest positive value.

    With a smallest positive value of 37 every value is rounded to the nearest
    10, so 1,234 and 1,236 fall in the same "area".

    Returns:
        (area_mode, nonzero_min). area_mode is a single value or, on ties, the
        ascending list of tied values. Both are None without a positive value.
    """
    positives = [v for v in values if v > 0]
    if not positives:
        return None, None

    nonzero_min = min(positives)
    factor = 10 ** math.floor(math.log10(nonzero_min))
    # Round half up, not to even
    rounded = pd.Series([math.floor(v / factor + 0.5) * factor for v in values], dtype='float64')
    return column_mode(rounded), nonzero_min


def year_to_date_factor(field_name):
    """Annualization multiplier implied by a period-to-date column name."""
    lower = field_name.lower()
    if 'mtd' in lower:
        return 12
    if 'day' in lower or 'daily' in lower:
        return 365
    return 1


def interpolate(start, end, steps):
    """
    Return `steps` evenly spaced points from start to end, both included.

    Raises:
        ValueError: If steps < 2 (the spacing would be undefined).
    """
    if steps < 2:
        raise ValueError(f"interpolate needs at least 2 steps, got {steps}")
    return np.linspace(start, end, steps).tolist()


def convex_probability(mode, unique, unique_array):
    """
    Build the convex probability curve over the sorted distinct values.

    Values up to the mode climb from 0 to 1 (low likelihood of a loss), values
    past the mode climb steeply from 5 to 100. The mode is used as the number
    of steps in the first segment.

    Args:
        mode: Column mode; on ties the smallest tied value is used.
        unique: Number of distinct values.
        unique_array: Sorted distinct values.

    Returns:
        dict mapping each distinct value to its probability (2 decimals), or
        None when either segment would have fewer than 2 points.
    """
    if isinstance(mode, list):
        mode = mode[0]
    if mode is None:
        return None

    first_steps = int(mode)
    second_steps = unique - first_steps
    if first_steps < 2 or second_steps < 2:
        print(f"[STATS] Convex curve skipped (mode steps={first_steps}, tail steps={second_steps})")
        return None

    curve = {}
    for i, probability in enumerate(interpolate(0, 1, first_steps)):
        curve[unique_array[i]] = round(probability, 2)
    for i, probability in enumerate(interpolate(5, 100, second_steps)):
        curve[unique_array[first_steps + i]] = round(probability, 2)
    return curve
