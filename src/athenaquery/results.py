"""Result assembly: Athena result payloads to ResultSet.

The transform is positional and value-preserving. Values stay as the
strings the service returned; a datum without ``VarCharValue`` is ``None``.
"""

from typing import Any, Dict, Iterable, List, Optional

from athenaquery.models import ColumnDescriptor, ResultSet, Row


def column_from_info(info: Dict[str, Any]) -> ColumnDescriptor:
    """Build a column descriptor from an Athena ColumnInfo payload."""
    return ColumnDescriptor(
        name=info.get("Name") or info.get("Label") or "",
        type=info.get("Type"),
        label=info.get("Label"),
        schema_name=info.get("SchemaName"),
        table_name=info.get("TableName"),
        nullable=info.get("Nullable"),
        precision=info.get("Precision"),
        scale=info.get("Scale"),
    )


def row_values(row: Dict[str, Any]) -> Row:
    """Return the positional values of an Athena Row payload."""
    return [datum.get("VarCharValue") for datum in row.get("Data") or []]


def assemble_result_set(
    columns: Optional[Iterable[Dict[str, Any]]],
    rows: Optional[Iterable[Dict[str, Any]]],
    skip_header: bool = False,
) -> ResultSet:
    """Assemble a ResultSet from raw column and row payloads.

    Args:
        columns: Athena ``ResultSetMetadata.ColumnInfo`` entries.
        rows: Athena ``ResultSet.Rows`` entries, in service order.
        skip_header: Drop the first row. Athena prepends a header row to
            SELECT results but not to DDL output, so this is left to the
            caller.

    Returns:
        The assembled ResultSet.
    """
    descriptors = [column_from_info(info) for info in columns or []]
    values: List[Row] = [row_values(row) for row in rows or []]
    if skip_header and values:
        values = values[1:]
    return ResultSet(columns=descriptors, rows=values)
