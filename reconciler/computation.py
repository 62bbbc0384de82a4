import math

from reconciler.column_stats import compute_statistics
from reconciler.errors import CellError, FunctionNotFound, FunctionRuntimeError, ReconcilerError
from reconciler.expression import safe_eval_formula, substitute_row_values
from reconciler.functions import create_default_registry
from reconciler.mapping import map_all_sources
from reconciler.risk import RiskScorer
from reconciler.schema import parse_function_call


def recalc(rows, schema, registry, source=None, report_formula_errors=False, progress_callback=None):
    """
    Compute every function and formula column of the schema on all rows.

    Runs in two passes: all function columns first, then all formula
    columns, so formulas can use values produced by functions. Rows are
    updated in place. A cell that cannot be computed is set to None and
    processing continues with the next cell.

    Args:
        rows: list of row dicts (mutated).
        schema: Schema declaring the columns.
        registry: FunctionRegistry used by function columns.
        source: Source key appended to source-aware function calls.
        report_formula_errors: Also record formula failures in the returned list.
        progress_callback: Optional callable(column_idx, total_columns, heading).

    Returns:
        list of CellError, in the order the failures happened.
    """
    errors = []
    function_columns = [col for col in schema.columns_of_type('function') if col.function]
    formula_columns = [col for col in schema.columns_of_type('formula') if col.formula]
    total = len(function_columns) + len(formula_columns)

    for idx, col in enumerate(function_columns):
        if progress_callback:
            progress_callback(idx + 1, total, col.heading)
        _compute_function_column(rows, col, registry, source, errors)

    for idx, col in enumerate(formula_columns):
        if progress_callback:
            progress_callback(len(function_columns) + idx + 1, total, col.heading)
        _compute_formula_column(rows, col, schema, errors, report_formula_errors)

    print(f"[RECALC] {len(function_columns)} function and {len(formula_columns)} formula columns "
          f"on {len(rows)} rows, {len(errors)} errors")
    return errors


def _compute_function_column(rows, col, registry, source, errors):
    call = parse_function_call(col.function)
    if call is None:
        print(f"[WARN] Column '{col.heading}': malformed function '{col.function}', skipped")
        return
    name, args = call

    try:
        spec = registry.get(name)
    except FunctionNotFound as e:
        for row_idx, row in enumerate(rows):
            row[col.id] = None
            errors.append(CellError(row_idx, col.heading, str(e), 'FunctionNotFound'))
        return

    for row_idx, row in enumerate(rows):
        try:
            row[col.id] = _sanitize_value(spec.invoke([row.get(arg) for arg in args], source))
        except FunctionRuntimeError as e:
            row[col.id] = None
            errors.append(CellError(row_idx, col.heading, str(e), 'FunctionRuntimeError'))


def _compute_formula_column(rows, col, schema, errors, report_errors):
    for row_idx, row in enumerate(rows):
        formula = substitute_row_values(col.formula, schema.columns, row)
        try:
            row[col.id] = _sanitize_value(safe_eval_formula(formula, col.data_type))
        except (ReconcilerError, ArithmeticError) as e:
            row[col.id] = None
            if report_errors:
                errors.append(CellError(row_idx, col.heading, str(e), type(e).__name__))


def _sanitize_value(value):
    """Replace inf and nan results with None so they don't reach aggregation or output."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _calls_function(schema, name):
    for col in schema.columns_of_type('function'):
        call = parse_function_call(col.function or '')
        if call is not None and call[0] == name:
            return True
    return False


def process_sources(model, source, registry=None, progress_callback=None):
    """
    Bring the session up to date once every pending file of a batch is loaded.

    Maps the schema's columns for every source in the row set, recomputes the
    statistics for the full row set under `source`, refreshes the risk signal
    columns for that source, and recalculates all computed columns.

    Args:
        model: DataModel with schema and rows loaded.
        source: Source key of the batch that just finished loading.
        registry: FunctionRegistry; defaults to create_default_registry(model).
        progress_callback: Passed through to recalc.

    Returns:
        list of CellError (also stored on model.errors).
    """
    schema = model.schema
    map_all_sources(model.rows, schema)

    model.statistics[source] = compute_statistics(model.rows)
    model.risk_columns.pop(source, None)

    if registry is None:
        registry = create_default_registry(model)

    if _calls_function(schema, 'risk'):
        RiskScorer(model).prepare(source)

    model.errors = recalc(
        model.rows,
        schema,
        registry,
        source=source,
        report_formula_errors=model.config['recalc']['report_formula_errors'],
        progress_callback=progress_callback,
    )
    return model.errors
