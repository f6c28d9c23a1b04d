"""
Schema Introspection Service
Reads column and primary key metadata from information_schema for procedure generation.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
from sqlalchemy import text
import structlog

logger = structlog.get_logger()


class ColumnNotFoundError(ValueError):
    """A requested column does not exist in the table."""

    def __init__(self, column: str, table: str):
        self.column = column
        self.table = table
        super().__init__(f"Column {column} not found in table {table}")


@dataclass
class ColumnInfo:
    name: str
    data_type: str
    is_nullable: bool = True
    column_default: Optional[str] = None
    ordinal_position: int = 0
    udt_name: Optional[str] = None
    is_identity: bool = False

    @property
    def is_auto_increment(self) -> bool:
        return self.is_identity or "nextval" in (self.column_default or "")

    @property
    def has_function_default(self) -> bool:
        return "(" in (self.column_default or "")

    @property
    def is_required(self) -> bool:
        """NOT NULL without a default value."""
        return not self.is_nullable and self.column_default is None and not self.is_identity


class SchemaIntrospector:
    """Column and key lookups against information_schema, cached per table."""

    def __init__(self, connection, schema: str = "public"):
        self.connection = connection
        self.schema = schema
        self._columns: Dict[str, List[ColumnInfo]] = {}
        self._primary_keys: Dict[str, List[str]] = {}

    def _fetch_columns(self, table: str) -> List[ColumnInfo]:
        query = text("""
            SELECT
                column_name,
                data_type,
                is_nullable,
                column_default,
                ordinal_position,
                udt_name,
                is_identity
            FROM information_schema.columns
            WHERE table_schema = :schema
              AND table_name = :table
            ORDER BY ordinal_position
        """)
        result = self.connection.execute(query, {"schema": self.schema, "table": table})
        return [
            ColumnInfo(
                name=row[0],
                data_type=row[1],
                is_nullable=row[2] == "YES",
                column_default=row[3],
                ordinal_position=row[4],
                udt_name=row[5],
                is_identity=row[6] == "YES"
            )
            for row in result
        ]

    def _fetch_primary_keys(self, table: str) -> List[str]:
        query = text("""
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
             AND tc.table_name = kcu.table_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_schema = :schema
              AND tc.table_name = :table
            ORDER BY kcu.ordinal_position
        """)
        result = self.connection.execute(query, {"schema": self.schema, "table": table})
        return [row[0] for row in result]

    def get_columns(self, table: str) -> List[ColumnInfo]:
        """All columns of the table in ordinal order."""
        if table not in self._columns:
            self._columns[table] = sorted(self._fetch_columns(table), key=lambda c: c.ordinal_position)
        return self._columns[table]

    def table_exists(self, table: str) -> bool:
        return len(self.get_columns(table)) > 0

    def get_primary_keys(self, table: str) -> List[str]:
        """Primary key column names in key order."""
        if table not in self._primary_keys:
            self._primary_keys[table] = self._fetch_primary_keys(table)
        return self._primary_keys[table]

    def resolve_column(self, table: str, name: str) -> Optional[ColumnInfo]:
        """Find a column by name, exact match first, then case-insensitive."""
        columns = self.get_columns(table)
        for column in columns:
            if column.name == name:
                return column
        lowered = name.lower()
        for column in columns:
            if column.name.lower() == lowered:
                return column
        return None

    def resolve_columns(self, table: str, names: List[str], required: bool = False) -> List[ColumnInfo]:
        """
        Resolve a list of column names, dropping duplicates.

        Missing columns raise when required, otherwise they are skipped with a warning.
        """
        resolved = []
        seen = set()
        for name in names:
            column = self.resolve_column(table, name)
            if column is None:
                if required:
                    raise ColumnNotFoundError(name, table)
                logger.warning("column_not_found_skipped", column=name, table=table)
                continue
            if column.name in seen:
                continue
            seen.add(column.name)
            resolved.append(column)
        return resolved
