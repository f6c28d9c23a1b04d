"""
Registry entries for scaffolded procedures

The same entries are rendered as SQL (for review or manual application) and
upserted through the ORM.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import json
from sqlalchemy.orm import Session
import structlog

from gridportal.models import StoredProcedureRegistry
from gridportal.services.codegen.sql_utils import quote_literal
from gridportal.services.grid.naming import (
    fetch_procedure_name, insert_procedure_name, update_procedure_name, delete_procedure_name
)

logger = structlog.get_logger()

GRID_CATEGORY = "Grid"
MUTATION_ROLES = ["Admin", "Manager"]
DEFAULT_PAGE_SIZE = 15
MAX_PAGE_SIZE = 100


@dataclass
class RegistrationEntry:
    procedure_name: str
    display_name: str
    description: str
    allowed_roles: List[str] = field(default_factory=list)
    database_name: Optional[str] = None
    category: str = GRID_CATEGORY
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    cache_duration_seconds: int = 0

    @property
    def allowed_roles_json(self) -> str:
        return json.dumps(self.allowed_roles, separators=(",", ":"))


def build_registration_entries(
    entity_name: str,
    display_name: str,
    allowed_roles: Sequence[str],
    database_name: Optional[str] = None,
    operations: Sequence[str] = ("fetch", "insert", "update", "delete")
) -> List[RegistrationEntry]:
    """Fetch gets the requested roles; mutations are limited to Admin and Manager."""
    entries = []
    if "fetch" in operations:
        entries.append(RegistrationEntry(
            procedure_name=fetch_procedure_name(entity_name),
            display_name=display_name,
            description=f"Displays {display_name} data",
            allowed_roles=list(allowed_roles),
            database_name=database_name,
        ))
    mutations = [
        ("insert", insert_procedure_name, "Insert {0}", "Inserts a new {0} record"),
        ("update", update_procedure_name, "Update {0}", "Updates a single {0} record"),
        ("delete", delete_procedure_name, "Delete {0}", "Deletes a single {0} record"),
    ]
    for operation, namer, label, description in mutations:
        if operation in operations:
            entries.append(RegistrationEntry(
                procedure_name=namer(entity_name),
                display_name=label.format(display_name)[:100],
                description=description.format(display_name)[:500],
                allowed_roles=list(MUTATION_ROLES),
                database_name=database_name,
            ))
    return entries


def generate_registration_sql(entries: List[RegistrationEntry]) -> str:
    """DELETE + INSERT ... ON CONFLICT script for the registry table."""
    if not entries:
        return ""

    names = ", ".join(quote_literal(e.procedure_name) for e in entries)
    values = []
    for entry in entries:
        database = quote_literal(entry.database_name) if entry.database_name else "NULL"
        values.append(
            f"    ({quote_literal(entry.procedure_name)}, {quote_literal(entry.display_name)}, "
            f"{quote_literal(entry.description)}, {quote_literal(entry.category)}, {database},\n"
            f"     true, true, {quote_literal(entry.allowed_roles_json)}, {entry.default_page_size}, "
            f"{entry.max_page_size}, {entry.cache_duration_seconds}, NOW())"
        )

    values_sql = ",\n".join(values)

    return f"""-- Delete existing entries
DELETE FROM "StoredProcedureRegistry"
WHERE "ProcedureName" IN ({names});

-- Register procedures
INSERT INTO "StoredProcedureRegistry" (
    "ProcedureName", "DisplayName", "Description", "Category", "DatabaseName",
    "IsActive", "RequiresAuth", "AllowedRoles", "DefaultPageSize", "MaxPageSize",
    "CacheDurationSeconds", "CreatedAt"
)
VALUES
{values_sql}
ON CONFLICT ("ProcedureName")
DO UPDATE SET
    "DisplayName" = EXCLUDED."DisplayName",
    "Description" = EXCLUDED."Description",
    "DatabaseName" = EXCLUDED."DatabaseName",
    "IsActive" = EXCLUDED."IsActive",
    "AllowedRoles" = EXCLUDED."AllowedRoles",
    "UpdatedAt" = NOW();
"""


def register_procedures(db: Session, entries: List[RegistrationEntry],
                        registered_by: Optional[str] = None) -> List[StoredProcedureRegistry]:
    """Insert or update registry rows for the entries and commit."""
    rows = []
    for entry in entries:
        row = db.query(StoredProcedureRegistry).filter(
            StoredProcedureRegistry.procedure_name == entry.procedure_name
        ).first()
        if row is None:
            row = StoredProcedureRegistry(procedure_name=entry.procedure_name, created_by=registered_by)
            db.add(row)
        else:
            row.updated_by = registered_by

        row.display_name = entry.display_name
        row.description = entry.description
        row.category = entry.category
        row.database_name = entry.database_name
        row.is_active = True
        row.requires_auth = True
        row.set_allowed_roles(entry.allowed_roles)
        row.default_page_size = entry.default_page_size
        row.max_page_size = entry.max_page_size
        row.cache_duration_seconds = entry.cache_duration_seconds
        rows.append(row)

    db.commit()
    logger.info("procedures_registered", procedures=[e.procedure_name for e in entries])
    return rows
