"""
Grid procedure code generation
"""
from gridportal.services.codegen.introspection import (
    SchemaIntrospector, ColumnInfo, ColumnNotFoundError
)
from gridportal.services.codegen.fetch_generator import generate_grid_fetch
from gridportal.services.codegen.crud_generator import (
    generate_insert_procedure, generate_update_procedure, generate_delete_procedure,
    generate_crud_procedures, CrudProcedures
)
from gridportal.services.codegen.registration import (
    RegistrationEntry, build_registration_entries, generate_registration_sql, register_procedures
)
from gridportal.services.codegen.scaffolder import GridScaffolder, ScaffoldResult, ScaffoldStep
