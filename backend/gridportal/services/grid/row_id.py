"""
Composite row id encoding

Generated fetch procedures expose a synthetic "Id": the key values as text
joined by '_' in key order. Mutation procedures split it back with
string_to_array(p_RowId, '_'); single-key tables use the value unchanged.
"""
from typing import Any, List, Sequence

ROW_ID_SEPARATOR = "_"


class RowIdFormatError(ValueError):
    """A row id does not have one part per key column."""


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_row_id(key_values: Sequence[Any]) -> str:
    return ROW_ID_SEPARATOR.join(_as_text(v) for v in key_values)


def decode_row_id(row_id: Any, key_count: int) -> List[str]:
    """Split a row id into one text value per key column."""
    if row_id is None or _as_text(row_id) == "":
        raise RowIdFormatError("Row id is required")

    text_id = _as_text(row_id)
    if key_count == 1:
        return [text_id]

    parts = text_id.split(ROW_ID_SEPARATOR)
    if len(parts) != key_count:
        raise RowIdFormatError(
            f"Invalid row id '{text_id}': expected {key_count} parts separated by '{ROW_ID_SEPARATOR}'"
        )
    return parts


def row_id_to_parameter(row_id: Any) -> str:
    """Row ids are always passed to procedures as text."""
    if row_id is None:
        return ""
    return _as_text(row_id)
