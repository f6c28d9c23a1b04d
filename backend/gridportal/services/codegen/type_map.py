"""
PostgreSQL data type classification for generated procedures
"""
from typing import Optional

INTEGER_TYPES = {"integer", "smallint"}
BIGINT_TYPES = {"bigint"}
NUMERIC_TYPES = {"numeric", "decimal", "real", "double precision"}
NUMBER_TYPES = INTEGER_TYPES | BIGINT_TYPES | NUMERIC_TYPES
DATE_TYPES = {"date", "timestamp without time zone", "timestamp with time zone"}
TEXT_TYPES = {"text", "character varying", "character", "varchar", "char", "name", "citext"}


def grid_type(data_type: str) -> str:
    """Column type used by the filter parser: number, date, boolean or text."""
    if data_type in NUMBER_TYPES:
        return "number"
    if data_type in DATE_TYPES:
        return "date"
    if data_type == "boolean":
        return "boolean"
    return "text"


def column_def_type(data_type: str) -> str:
    """Column type published in column definitions: number, date or text."""
    kind = grid_type(data_type)
    return kind if kind in ("number", "date") else "text"


def sql_cast(data_type: str, udt_name: Optional[str] = None) -> str:
    """
    Cast suffix for a text value headed into a column of this type.

    Text columns take the value as-is and get an empty suffix.
    """
    if data_type in TEXT_TYPES:
        return ""
    if data_type in INTEGER_TYPES:
        return "::INTEGER"
    if data_type in BIGINT_TYPES:
        return "::BIGINT"
    if data_type in NUMERIC_TYPES:
        return "::NUMERIC"
    if data_type == "boolean":
        return "::BOOLEAN"
    if data_type == "date":
        return "::DATE"
    if data_type == "timestamp without time zone":
        return "::TIMESTAMP"
    if data_type == "timestamp with time zone":
        return "::TIMESTAMPTZ"
    if data_type in ("USER-DEFINED", "ARRAY") and udt_name:
        return '::"' + udt_name.replace('"', '""') + '"'
    return "::" + data_type.upper()


def is_text_type(data_type: str) -> bool:
    return data_type in TEXT_TYPES
