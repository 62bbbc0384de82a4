from dataclasses import dataclass, field
from datetime import date

from reconciler.coercion import best_effort_number, parse_date
from reconciler.errors import FunctionNotFound, FunctionRuntimeError
from reconciler.risk import RiskScorer


@dataclass
class FunctionSpec:
    """
    A named function that function columns can call.

    Attributes:
        name: Name used in the column's function string.
        arity: Number of column arguments the function expects.
        implementation: Callable receiving the coerced arguments.
        description: Human-readable summary.
        date_params: Indexes of arguments passed as raw cell values rather
            than best-effort numbers.
        source_aware: Whether the recalculation's source key is appended as a
            trailing argument.
    """

    name: str
    arity: int
    implementation: object
    description: str = ''
    date_params: tuple = ()
    source_aware: bool = False

    def coerce_args(self, raw_values):
        return [
            value if index in self.date_params else best_effort_number(value)
            for index, value in enumerate(raw_values)
        ]

    def invoke(self, raw_values, source=None):
        """
        Call the implementation with coerced arguments.

        Raises:
            FunctionRuntimeError: If the implementation raises.
        """
        if len(raw_values) != self.arity:
            raise FunctionRuntimeError(
                f"{self.name} expects {self.arity} arguments, got {len(raw_values)}")
        args = self.coerce_args(raw_values)
        if self.source_aware:
            args.append(source)
        try:
            return self.implementation(*args)
        except Exception as e:
            raise FunctionRuntimeError(f"{self.name}: {e}") from e


@dataclass
class FunctionRegistry:
    """Functions available to function columns, keyed by name."""

    functions: dict = field(default_factory=dict)

    def register(self, spec):
        self.functions[spec.name] = spec
        return spec

    def get(self, name):
        """
        Raises:
            FunctionNotFound: If no function is registered under `name`.
        """
        try:
            return self.functions[name]
        except KeyError:
            raise FunctionNotFound(f'Function "{name}" not found.') from None

    def names(self):
        return list(self.functions)

    def __contains__(self, name):
        return name in self.functions


# ── Built-in implementations ────────────────────────────────

def interest_income(principal, rate):
    """Interest income on a principal at an annual rate."""
    return principal * rate


def until_maturity(maturity=None, today=None):
    """
    Months and years remaining until a maturity date.

    Months count whole calendar months, minus one when today's day of month
    is past the maturity's. Both figures are at least 1. Without a maturity
    date the instrument is assumed to have a year left.

    Args:
        maturity: Maturity date (date object or date string).
        today: Reference date, defaults to the current date.

    Returns:
        (months_until_maturity, years_until_maturity)
    """
    maturity_date = parse_date(maturity) if maturity else None
    if maturity_date is None:
        if maturity:
            print(f"[WARN] Unreadable maturity date {maturity!r}, defaulting to 12 months and 1 year")
        else:
            print("[WARN] Maturity date not provided, defaulting to 12 months and 1 year")
        return 12, 1

    today = today or date.today()
    months = (maturity_date.year - today.year) * 12 + (maturity_date.month - today.month)
    if today.day > maturity_date.day:
        months -= 1
    months = max(1, months)
    years = max(1, months / 12)
    return months, years


def average_balance(principal, payment, rate, maturity=None, today=None):
    """
    Average outstanding balance of an amortizing loan until maturity.

    Rates below 1 are read as fractions (0.05), larger ones as percentages (5).
    The balance is carried month by month: each month adds the current
    balance to the running total, then the payment net of interest is taken
    off, until maturity or until the loan is paid down.

    Returns:
        Average balance rounded to 2 decimals.
    """
    months, _years = until_maturity(maturity, today)
    monthly_rate = rate / 12 if rate < 1 else rate / 100 / 12

    cumulative_principal = 0
    balance = principal
    month = 0
    while month < months and balance > 0:
        cumulative_principal += balance
        balance -= payment - balance * monthly_rate
        month += 1

    return round(cumulative_principal / months, 2)


def create_default_registry(model=None, today=None):
    """
    Build the registry of built-in functions.

    Args:
        model: Optional DataModel. When given, "risk" is registered against
            its cached statistics, and its as_of date is used for maturity math.
        today: Reference date overriding model.as_of.

    Returns:
        FunctionRegistry
    """
    if today is None and model is not None:
        today = model.as_of

    registry = FunctionRegistry()
    registry.register(FunctionSpec(
        name='interestIncome',
        arity=2,
        implementation=interest_income,
        description="Calculates the interest income based on principal and annual rate",
    ))
    registry.register(FunctionSpec(
        name='averageBalance',
        arity=4,
        implementation=lambda principal, payment, rate, maturity: average_balance(
            principal, payment, rate, maturity, today),
        description="Calculates the average balance of a loan over its term",
        date_params=(3,),
    ))
    registry.register(FunctionSpec(
        name='untilMaturity',
        arity=1,
        implementation=lambda maturity: until_maturity(maturity, today)[0],
        description="Calculates the number of months to maturity of a financial instrument",
        date_params=(0,),
    ))

    if model is not None:
        scorer = RiskScorer(model)
        registry.register(FunctionSpec(
            name='risk',
            arity=4,
            implementation=scorer.risk,
            description="Weighted risk score from balance, checks, deposits and NSF activity",
            source_aware=True,
        ))

    return registry
