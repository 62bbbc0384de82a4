from dataclasses import dataclass


class ReconcilerError(Exception):
    """Base class for errors raised by the reconciliation engine."""
    pass


class SchemaError(ReconcilerError):
    """Raised when a schema document cannot be used (missing columnsConfig, bad column)."""
    pass


class UnsafeExpression(ReconcilerError):
    """Raised when a substituted formula contains characters outside the arithmetic whitelist."""
    pass


class ExpressionSyntaxError(ReconcilerError):
    """Raised when a whitelisted formula string is not a well-formed arithmetic expression."""
    pass


class FunctionNotFound(ReconcilerError):
    """Raised when a function column names a function missing from the registry."""
    pass


class FunctionRuntimeError(ReconcilerError):
    """Raised when a registered function fails while computing a cell."""
    pass


class MalformedFilterLiteral(ReconcilerError):
    """Raised when a JSON-array filter literal cannot be parsed."""
    pass


class UnresolvedFieldName(ReconcilerError):
    """Raised when a field name cannot be resolved against the available headers."""
    pass


@dataclass
class CellError:
    """One entry of the error channel: a cell that could not be computed."""

    row_index: int
    column_heading: str
    message: str
    kind: str = "FunctionRuntimeError"

    def __str__(self):
        # Row numbers are shown 1-based
        return f'Row {self.row_index + 1}, column "{self.column_heading}": {self.message}'
