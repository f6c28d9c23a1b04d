"""
Grid export

Renders grid rows as CSV or Excel using the grid's column definitions for
column order and header labels.
"""
from typing import Any, Dict, List, Tuple
import io
import pandas as pd

from gridportal.schemas import ColumnDefinition
from gridportal.services.grid.errors import InvalidGridRequestError

EXPORT_FORMATS = {
    "csv": ("text/csv", "csv"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
}

# Non-data columns
SKIPPED_FIELDS = {"actions"}

MAX_SHEET_NAME = 31


def rows_to_dataframe(rows: List[Dict[str, Any]], columns: List[ColumnDefinition]) -> pd.DataFrame:
    fields = [c for c in columns if c.field not in SKIPPED_FIELDS]
    if not fields:
        return pd.DataFrame(rows)

    df = pd.DataFrame(rows, columns=[c.field for c in fields])
    df.columns = [c.header_name or c.field for c in fields]
    return df


def render_export(df: pd.DataFrame, export_format: str, sheet_name: str = "Sheet1") -> Tuple[bytes, str, str]:
    """Return (content, media type, file extension)."""
    export_format = (export_format or "").lower()
    if export_format not in EXPORT_FORMATS:
        raise InvalidGridRequestError(f"Unsupported export format: {export_format}")

    media_type, extension = EXPORT_FORMATS[export_format]
    if export_format == "csv":
        return df.to_csv(index=False).encode("utf-8"), media_type, extension

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
        df.to_excel(writer, sheet_name=sheet_name[:MAX_SHEET_NAME] or "Sheet1", index=False)
    return output.getvalue(), media_type, extension
