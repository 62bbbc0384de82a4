import copy

from reconciler.config import DEFAULT_CONFIG


class DataModel:
    """Shared state container for one working session."""

    def __init__(self, schema=None, config=None, as_of=None):
        self.schema = schema                        # Schema being reconciled against
        self.sheet_name = schema.sheet_name if schema is not None else None
        self.config = config or copy.deepcopy(DEFAULT_CONFIG)  # Merged config dict (see config.load_config)
        self.as_of = as_of                          # Reference date for maturity math (None = today)
        self.file_paths = {}                        # Maps source name to list of file paths
        self.rows = []                              # All loaded rows, tagged with '__source'
        self.statistics = {}                        # Source key -> {column: statistics dict}
        self.risk_columns = {}                      # Source key -> {signal: resolved statistics column}
        self.errors = []                            # CellErrors from the last recalculation

    def reset(self):
        """Discard rows and every derived cache, keeping schema and config."""
        self.rows = []
        self.statistics = {}
        self.risk_columns = {}
        self.errors = []

    def load_schema(self, schema):
        """Switch to a new schema; all prior data is dropped."""
        self.schema = schema
        self.sheet_name = schema.sheet_name
        self.file_paths = {}
        self.reset()

    def add_rows(self, rows):
        self.rows.extend(rows)

    def sources(self):
        """Sources present in the loaded rows, in load order."""
        seen = []
        for row in self.rows:
            source = row.get('__source')
            if source not in seen:
                seen.append(source)
        return seen
