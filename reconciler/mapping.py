SOURCE_KEY = '__source'


def rows_from_table(headers, values, source):
    """
    Build source-tagged row dicts from an ordered header list and value lists.

    Headers and string values are trimmed. Rows shorter than the header list
    get None for the missing trailing cells; extra cells are dropped.

    Args:
        headers: Header strings in column order.
        values: List of rows, each a list of cell values in column order.
        source: Source name to tag every row with.

    Returns:
        list of row dicts.
    """
    headers = [str(h).strip() for h in headers]
    rows = []
    for line in values:
        row = {}
        for index, header in enumerate(headers):
            value = line[index] if index < len(line) else None
            row[header] = value.strip() if isinstance(value, str) else value
        row[SOURCE_KEY] = source
        rows.append(row)
    return rows


def map_columns(rows, schema, source):
    """
    Bind the schema's declared data columns onto the rows of one source.

    For each row tagged with `source`, every data column bound to that source
    is guaranteed to exist as a key afterwards: an exact key is kept, a key
    matching case-insensitively is copied under the declared id, and anything
    else becomes None. Rows are mutated in place; none are dropped.
    """
    columns = schema.data_columns_for(source)
    mapped = 0
    missing = set()
    for row in rows:
        if row.get(SOURCE_KEY) != source:
            continue
        mapped += 1
        for col in columns:
            if col.id in row:
                continue
            target = col.id.lower()
            for key in list(row):
                if isinstance(key, str) and key.lower() == target:
                    row[col.id] = row[key]
                    break
            else:
                row[col.id] = None
                missing.add(col.id)

    if missing:
        print(f"[MAP] Source '{source}': no header found for {sorted(missing)}, set to None")
    print(f"[MAP] Source '{source}': mapped {len(columns)} columns on {mapped} rows")


def map_all_sources(rows, schema):
    """Run map_columns for every source present in the row set."""
    sources = []
    for row in rows:
        source = row.get(SOURCE_KEY)
        if source not in sources:
            sources.append(source)
    for source in sources:
        map_columns(rows, schema, source)
