"""
Grid Scaffolding Script

Generates and installs the fetch, insert, update and delete procedures for
a table, then registers them in StoredProcedureRegistry.

    python scripts/scaffold_grid.py employees Employees "Employees" \
        --display-columns id name email --editable-columns name email
"""
import argparse
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gridportal.database import SessionLocal, grid_db_router
from gridportal.services.codegen import GridScaffolder
from gridportal.services.codegen.scaffolder import ALL_OPERATIONS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scaffold grid procedures for a table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("table_name", help="Source table in the public schema")
    parser.add_argument("entity_name", help="Entity suffix used in procedure names")
    parser.add_argument("display_name", help="Display name shown in the grid list")
    parser.add_argument("--database", dest="database_name", default=None,
                        help="Named grid database (GRID_DATABASES key)")
    parser.add_argument("--schema", default="public")
    parser.add_argument("--display-columns", nargs="*", default=None)
    parser.add_argument("--editable-columns", nargs="*", default=None)
    parser.add_argument("--roles", nargs="*", default=["Admin", "Manager", "User"],
                        help="Roles allowed to open the grid")
    parser.add_argument("--operations", nargs="*", default=list(ALL_OPERATIONS),
                        choices=list(ALL_OPERATIONS))
    parser.add_argument("--no-register", action="store_true",
                        help="Print the registration SQL instead of registering")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    db = None if args.no_register else SessionLocal()
    try:
        with grid_db_router.get_connection(args.database_name) as connection:
            result = GridScaffolder(connection, schema=args.schema).scaffold(
                table_name=args.table_name,
                entity_name=args.entity_name,
                display_name=args.display_name,
                database_name=args.database_name,
                display_columns=args.display_columns,
                editable_columns=args.editable_columns,
                allowed_roles=args.roles,
                operations=args.operations,
                registry_session=db,
                registered_by="scaffold_grid"
            )
    finally:
        if db is not None:
            db.close()

    print(result.report())
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
