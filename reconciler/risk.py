from reconciler.errors import UnresolvedFieldName
from reconciler.lexicon import resolve_field

SIGNALS = ('balance', 'checks', 'deposits', 'nsf')

# Threshold names in the order they are checked, highest first
_THRESHOLDS = ('three_std', 'two_std', 'mean')


class RiskScorer:
    """
    Heuristic risk score for one entity, relative to the loaded population.

    Each signal (balance, checks, deposits, nsf) is compared with the
    statistics of its column for the same source: above 3 standard
    deviations, above 2, above the mean, or not. The tier values reached per
    signal are weighted and summed. Weights, tier values and the field names
    used to find each signal's column come from the "risk" config section.
    This is not a calibrated model.

    Args:
        model: DataModel holding the per-source statistics cache and config.
    """

    def __init__(self, model):
        self.model = model

    @property
    def _config(self):
        return self.model.config['risk']

    def prepare(self, source):
        """
        Resolve and cache the statistics column behind each signal for a source.

        Unresolvable signals are cached as None so the failure is reported
        when a score needs them.

        Returns:
            dict mapping signal name to column name (or None).
        """
        statistics = self.model.statistics.get(source) or {}
        headers = list(statistics)
        resolved = {}
        for signal in SIGNALS:
            field_name = self._config['signals'].get(signal, signal)
            resolved[signal] = resolve_field(headers, field_name) if headers else None

        unresolved = [signal for signal, column in resolved.items() if column is None]
        if unresolved:
            print(f"[RISK] Source '{source}': no statistics column found for {unresolved}")
        else:
            print(f"[RISK] Source '{source}': signals resolved to {resolved}")

        self.model.risk_columns[source] = resolved
        return resolved

    def signal_column(self, signal, source):
        """
        Raises:
            UnresolvedFieldName: If the signal has no matching statistics column.
        """
        resolved = self.model.risk_columns.get(source)
        if resolved is None:
            resolved = self.prepare(source)
        column = resolved.get(signal)
        if column is None:
            raise UnresolvedFieldName(
                f"Cannot resolve '{self._config['signals'].get(signal, signal)}' "
                f"in statistics for source '{source}'"
            )
        return column

    def tier(self, signal, value, source):
        """Tier value reached by `value` for one signal (strict > comparisons)."""
        stats = self.model.statistics[source][self.signal_column(signal, source)]
        tiers = self._config['tiers'][signal]
        bounds = {
            'three_std': stats['threeStdDeviations'][1],
            'two_std': stats['twoStdDeviations'][1],
            'mean': stats['mean'],
        }
        for threshold in _THRESHOLDS:
            if threshold in tiers and value > bounds[threshold]:
                return tiers[threshold]
        return tiers['base']

    def risk(self, balance, checks, deposits, nsf, source=None):
        """
        Weighted composite risk score.

        Args:
            balance, checks, deposits, nsf: Observed values for the entity.
            source: Source key whose cached statistics are the reference.

        Returns:
            The weighted sum of tier values, or 0 when the balance is 0 or no
            source is given.

        Raises:
            UnresolvedFieldName: If a signal's statistics column cannot be found.
        """
        if balance == 0 or not source:
            return 0

        values = {'balance': balance, 'checks': checks, 'deposits': deposits, 'nsf': nsf}
        weights = self._config['weights']
        return sum(weights[signal] * self.tier(signal, values[signal], source) for signal in SIGNALS)
