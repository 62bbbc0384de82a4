"""
Restricted arithmetic for formula columns.

A formula such as "maturity_date - DATE(2024-01-01)" or "averageBalance * 0.1"
is evaluated in three steps:

    1. Column ids are replaced by the row's values (dates as DATE(YYYY-MM-DD)).
    2. DATE(...) tokens are replaced by whole days since 1970-01-01.
    3. The remaining text must consist only of digits, + - * / ( ) . and
       whitespace; it is parsed into a small AST and evaluated by walking it.

Nothing is ever handed to eval().
"""

import math
import re
from dataclasses import dataclass

from reconciler.coercion import best_effort_number, date_from_days, days_since_epoch, parse_date
from reconciler.errors import ExpressionSyntaxError, UnsafeExpression

SAFE_EXPRESSION = re.compile(r'^[0-9+\-*/().\s]+$')
DATE_TOKEN = re.compile(r'DATE\((.*?)\)')
_TOKEN = re.compile(r'\s*(?:(\d+\.?\d*|\.\d+)|(.))')


# ── Substitution ────────────────────────────────────────────

def format_number(value):
    """Render a number the way it is substituted into a formula."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def substitute_row_values(formula, columns, row):
    """
    Replace whole-word column ids in a formula with the row's values.

    Date columns become DATE(YYYY-MM-DD), or DATE(Invalid) when the value
    cannot be read as a date; an empty date cell is left unsubstituted. Other
    columns become their best-effort number; a missing (None) cell leaves the
    id in place, which the safety check then rejects.

    Args:
        formula: Formula template.
        columns: Declared ColumnSpecs whose ids may appear in the template.
        row: Row dict holding the current values.

    Returns:
        The substituted formula string.
    """
    for col in columns:
        value = row.get(col.id)
        if col.data_type == 'date':
            if not value:
                continue
            parsed = parse_date(value)
            replacement = f'DATE({parsed.isoformat()})' if parsed else 'DATE(Invalid)'
        else:
            if value is None:
                continue
            replacement = format_number(best_effort_number(value))
        pattern = re.compile(r'\b' + re.escape(col.id) + r'\b')
        formula = pattern.sub(lambda _m: replacement, formula)
    return formula


def replace_date_tokens(formula):
    """Turn every DATE(...) token into its day count since the epoch, or NaN."""
    def to_days(match):
        inner = match.group(1).strip()
        if inner == 'Invalid':
            return 'NaN'
        parsed = parse_date(inner)
        if parsed is None:
            return 'NaN'
        return str(days_since_epoch(parsed))

    return DATE_TOKEN.sub(to_days, formula)


# ── Parsing ─────────────────────────────────────────────────

@dataclass
class Number:
    value: float


@dataclass
class UnaryOp:
    op: str
    operand: object


@dataclass
class BinaryOp:
    op: str
    left: object
    right: object


def tokenize(text):
    tokens = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN.match(text, position)
        number, symbol = match.groups()
        if number is not None:
            tokens.append(('num', float(number)))
        elif symbol in '+-*/()':
            tokens.append(('op', symbol))
        else:
            raise ExpressionSyntaxError(f"Unexpected character {symbol!r} in {text!r}")
        position = match.end()
    return tokens


class _Parser:
    """
    Recursive-descent parser for:

        expr    := term (('+' | '-') term)*
        term    := unary (('*' | '/') unary)*
        unary   := ('+' | '-') unary | primary
        primary := NUMBER | '(' expr ')'
    """

    def __init__(self, text):
        self.text = text
        self.tokens = tokenize(text)
        self.position = 0

    def parse(self):
        node = self._expr()
        if self.position != len(self.tokens):
            raise ExpressionSyntaxError(f"Unexpected {self._peek()[1]!r} in {self.text!r}")
        return node

    def _peek(self):
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return (None, None)

    def _take_op(self, symbols):
        kind, value = self._peek()
        if kind == 'op' and value in symbols:
            self.position += 1
            return value
        return None

    def _expr(self):
        node = self._term()
        while True:
            op = self._take_op('+-')
            if op is None:
                return node
            node = BinaryOp(op, node, self._term())

    def _term(self):
        node = self._unary()
        while True:
            op = self._take_op('*/')
            if op is None:
                return node
            node = BinaryOp(op, node, self._unary())

    def _unary(self):
        op = self._take_op('+-')
        if op is not None:
            return UnaryOp(op, self._unary())
        return self._primary()

    def _primary(self):
        kind, value = self._peek()
        if kind == 'num':
            self.position += 1
            return Number(value)
        if self._take_op('('):
            node = self._expr()
            if not self._take_op(')'):
                raise ExpressionSyntaxError(f"Missing ')' in {self.text!r}")
            return node
        if kind is None:
            raise ExpressionSyntaxError(f"Unexpected end of expression in {self.text!r}")
        raise ExpressionSyntaxError(f"Unexpected {value!r} in {self.text!r}")


def parse_expression(text):
    """Parse a whitelisted arithmetic string into an AST."""
    return _Parser(text).parse()


def evaluate(node):
    """
    Walk an expression AST and return its float value.

    Raises:
        ZeroDivisionError: On division by zero.
    """
    if isinstance(node, Number):
        return node.value
    if isinstance(node, UnaryOp):
        operand = evaluate(node.operand)
        return -operand if node.op == '-' else operand
    if isinstance(node, BinaryOp):
        left = evaluate(node.left)
        right = evaluate(node.right)
        if node.op == '+':
            return left + right
        if node.op == '-':
            return left - right
        if node.op == '*':
            return left * right
        return left / right
    raise ExpressionSyntaxError(f"Unknown expression node {node!r}")


def safe_eval_formula(formula, expected_type=None):
    """
    Evaluate a substituted formula string.

    Args:
        formula: Formula text containing only numbers, operators, parentheses
            and DATE(...) tokens.
        expected_type: The column's data_type. For 'date' the numeric result
            is read as a day offset and returned as "YYYY-MM-DD".

    Returns:
        float result, or an ISO date string for date columns.

    Raises:
        UnsafeExpression: If any other character remains after DATE substitution.
        ExpressionSyntaxError: If the text is not a well-formed expression.
        ZeroDivisionError: On division by zero.
    """
    transformed = replace_date_tokens(formula)
    if not SAFE_EXPRESSION.match(transformed):
        raise UnsafeExpression(f"Unsafe characters detected in formula: {transformed}")

    value = evaluate(parse_expression(transformed))

    if expected_type == 'date' and not math.isnan(value):
        try:
            return date_from_days(value).isoformat()
        except (OverflowError, ValueError):
            return value
    return value
