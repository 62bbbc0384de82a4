import json
import re
from dataclasses import dataclass, field
from pathlib import Path

from reconciler.errors import SchemaError

COLUMN_TYPES = ('data', 'function', 'formula')
DATA_TYPES = ('unique', 'currency', 'rate', 'integer', 'float', 'strings', 'date')

# Keys of a column entry in the schema document, in their canonical order
COLUMN_KEYS = ('heading', 'id', 'column_type', 'data_type', 'source_name', 'function', 'formula', 'filter')
_OPTIONAL_KEYS = ('source_name', 'function', 'formula', 'filter')

FUNCTION_CALL = re.compile(r'^(\w+)\(([^)]*)\)$')
_IDENTIFIER = re.compile(r'[A-Za-z_]\w*')


def parse_function_call(text):
    """
    Split "name(arg1, arg2)" into ("name", ["arg1", "arg2"]).

    Returns None when the text is not a single call expression.
    """
    match = FUNCTION_CALL.match(text.strip())
    if not match:
        return None
    args_str = match.group(2).strip()
    args = [arg.strip() for arg in args_str.split(',')] if args_str else []
    return match.group(1), args


@dataclass
class ColumnSpec:
    """Declaration of one sheet column: identity, type, source and derivation rule."""

    heading: str
    id: str
    column_type: str
    data_type: str
    source_name: str = None
    function: str = None
    formula: str = None
    filter: str = None
    # Keys as they appeared in the loaded document, so export keeps the same shape
    key_order: tuple = field(default=None, repr=False, compare=False)
    extra: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, entry):
        if not isinstance(entry, dict):
            raise SchemaError(f"Column entry must be an object, got {type(entry).__name__}")
        missing = [key for key in ('id', 'column_type', 'data_type') if not entry.get(key)]
        if missing:
            raise SchemaError(f"Column {entry.get('heading') or entry.get('id')!r} is missing {missing}")
        return cls(
            heading=entry.get('heading', entry['id']),
            id=entry['id'],
            column_type=entry['column_type'],
            data_type=entry['data_type'],
            source_name=entry.get('source_name'),
            function=entry.get('function'),
            formula=entry.get('formula'),
            filter=entry.get('filter'),
            key_order=tuple(entry.keys()),
            extra={k: v for k, v in entry.items() if k not in COLUMN_KEYS},
        )

    def to_dict(self):
        values = {key: getattr(self, key) for key in COLUMN_KEYS}
        values.update(self.extra)
        if self.key_order is not None:
            return {key: values[key] for key in self.key_order if key in values}
        return {
            key: value for key, value in values.items()
            if key not in _OPTIONAL_KEYS or value is not None
        }

    @property
    def is_data(self):
        return self.column_type == 'data'

    def applies_to(self, source):
        """Whether this data column is read from `source` (unbound columns apply to every source)."""
        return self.is_data and (not self.source_name or self.source_name == source)


class Schema:
    """Ordered collection of ColumnSpecs describing one sheet."""

    def __init__(self, columns, sheet_name=None):
        self.columns = list(columns)
        self.sheet_name = sheet_name

    @classmethod
    def from_document(cls, document, default_name=None):
        """
        Build a Schema from a parsed schema document.

        Args:
            document: dict with "columnsConfig" (list of column entries) and
                optionally "sheetName".
            default_name: Sheet name to use when the document has none.

        Raises:
            SchemaError: If the document has no usable columnsConfig.
        """
        if not isinstance(document, dict) or 'columnsConfig' not in document:
            raise SchemaError("Invalid sheet configuration: missing 'columnsConfig'.")
        entries = document['columnsConfig']
        if not isinstance(entries, list):
            raise SchemaError("Invalid sheet configuration: 'columnsConfig' must be a list.")
        columns = [ColumnSpec.from_dict(entry) for entry in entries]
        return cls(columns, sheet_name=document.get('sheetName', default_name))

    def to_document(self):
        document = {}
        if self.sheet_name is not None:
            document['sheetName'] = self.sheet_name
        document['columnsConfig'] = [col.to_dict() for col in self.columns]
        return document

    def __iter__(self):
        return iter(self.columns)

    def __len__(self):
        return len(self.columns)

    @property
    def ids(self):
        return [col.id for col in self.columns]

    def column(self, column_id):
        for col in self.columns:
            if col.id == column_id:
                return col
        return None

    def unique_column(self):
        for col in self.columns:
            if col.data_type == 'unique' and col.is_data:
                return col
        return None

    def columns_of_type(self, column_type):
        return [col for col in self.columns if col.column_type == column_type]

    def filtered_columns(self):
        return [col for col in self.columns if col.filter]

    def data_columns_for(self, source):
        return [col for col in self.columns if col.applies_to(source)]

    def data_sources(self):
        """Distinct source names of the non-key data columns, in first-seen order."""
        sources = []
        for col in self.columns:
            if col.is_data and col.data_type != 'unique' and col.source_name and col.source_name not in sources:
                sources.append(col.source_name)
        return sources

    def validate(self, function_names=None):
        """
        Check the schema for structural problems.

        Args:
            function_names: Optional collection of registered function names;
                when given, function columns must call one of them.

        Returns:
            list of problem descriptions (empty when the schema is valid).
        """
        problems = []
        ids = self.ids
        seen = set()
        for col in self.columns:
            if col.id in seen:
                problems.append(f"Duplicate column id '{col.id}'")
            seen.add(col.id)
            if col.column_type not in COLUMN_TYPES:
                problems.append(f"Column '{col.id}' has unknown column_type '{col.column_type}'")
            if col.data_type not in DATA_TYPES:
                problems.append(f"Column '{col.id}' has unknown data_type '{col.data_type}'")

        unique_count = sum(1 for col in self.columns if col.data_type == 'unique')
        if unique_count != 1:
            problems.append(f"Schema must have exactly one unique column, found {unique_count}")

        for col in self.columns_of_type('function'):
            call = parse_function_call(col.function or '')
            if call is None:
                problems.append(f"Column '{col.id}' has malformed function '{col.function}'")
                continue
            name, args = call
            if function_names is not None and name not in function_names:
                problems.append(f"Column '{col.id}' calls unknown function '{name}'")
            for arg in args:
                if arg not in ids:
                    problems.append(f"Column '{col.id}' references unknown column '{arg}'")

        for col in self.columns_of_type('formula'):
            if not col.formula:
                problems.append(f"Column '{col.id}' has an empty formula")
                continue
            for name in _IDENTIFIER.findall(col.formula):
                if name != 'DATE' and name not in ids:
                    problems.append(f"Column '{col.id}' references unknown column '{name}'")

        return problems


def load_schema(path):
    """
    Load a schema document from a JSON file.

    The sheet name defaults to the file name without its extension.

    Raises:
        SchemaError: If the file is not valid JSON or not a schema document.
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Error parsing sheet configuration {path.name}: {e}") from e
    schema = Schema.from_document(document, default_name=path.stem)
    print(f"[SCHEMA] Loaded '{schema.sheet_name}' with {len(schema)} columns")
    return schema


def save_schema(schema, path):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(schema.to_document(), f, indent=2)
    print(f"[SCHEMA] Saved '{schema.sheet_name}' to {path}")
