"""
Insert / Update / Delete Procedure Generators

Row ids follow services.grid.row_id: key values joined by '_' in key order,
single-key tables use the value as-is.
"""
from dataclasses import dataclass
from typing import List
import structlog

from gridportal.services.codegen.introspection import SchemaIntrospector, ColumnInfo
from gridportal.services.codegen.sql_utils import (
    ENTITY_PATTERN, quote_ident, quote_literal, qualified_table, title_case, render
)
from gridportal.services.codegen.type_map import sql_cast, is_text_type
from gridportal.services.grid.naming import (
    insert_procedure_name, update_procedure_name, delete_procedure_name
)
from gridportal.services.grid.row_id import ROW_ID_SEPARATOR

logger = structlog.get_logger()


INSERT_TEMPLATE = """-- Auto-generated INSERT procedure for {{TABLE_NAME}}
CREATE OR REPLACE FUNCTION public.{{PROC_NAME}}(
    p_FieldValuesJson TEXT,
    p_UserId INTEGER DEFAULT NULL
)
RETURNS JSONB
LANGUAGE plpgsql
AS $BODY$
DECLARE
    v_FieldValues JSONB;
    v_Columns TEXT[] := ARRAY[]::TEXT[];
    v_Values TEXT[] := ARRAY[]::TEXT[];
    v_NewRecord {{QUALIFIED_TABLE}}%ROWTYPE;
BEGIN
    IF p_FieldValuesJson IS NULL OR p_FieldValuesJson = '' THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Field values are required',
            'errorCode', 'INVALID_INPUT'
        );
    END IF;

    v_FieldValues := p_FieldValuesJson::JSONB;
{{REQUIRED_CHECKS}}
{{COLLECT_VALUES}}
    IF array_length(v_Columns, 1) IS NULL THEN
        EXECUTE $SQL$INSERT INTO {{QUALIFIED_TABLE}} DEFAULT VALUES RETURNING *$SQL$
        INTO v_NewRecord;
    ELSE
        EXECUTE format($SQL$INSERT INTO {{QUALIFIED_TABLE}} (%s) VALUES (%s) RETURNING *$SQL$,
                       array_to_string(v_Columns, ', '),
                       array_to_string(v_Values, ', '))
        INTO v_NewRecord;
    END IF;

    RETURN jsonb_build_object(
        'success', true,
        'message', 'Record created successfully',
        'createdRow', to_jsonb(v_NewRecord) || jsonb_build_object('Id', {{RECORD_ID}})
    );
EXCEPTION
    WHEN unique_violation THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'A record with the same key already exists',
            'errorCode', 'DUPLICATE_VALUE'
        );
    WHEN not_null_violation THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Required field is missing: ' || SQLERRM,
            'errorCode', 'REQUIRED_FIELD_MISSING'
        );
    WHEN foreign_key_violation THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Invalid reference: ' || SQLERRM,
            'errorCode', 'INVALID_REFERENCE'
        );
    WHEN OTHERS THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Error creating record: ' || SQLERRM,
            'errorCode', 'DB_ERROR'
        );
END;
$BODY$;

GRANT EXECUTE ON FUNCTION public.{{PROC_NAME}}(TEXT, INTEGER) TO PUBLIC;
"""

UPDATE_TEMPLATE = """-- Auto-generated UPDATE procedure for {{TABLE_NAME}}
CREATE OR REPLACE FUNCTION public.{{PROC_NAME}}(
    p_RowId TEXT,
    p_ChangesJson TEXT,
    p_UserId INTEGER DEFAULT NULL
)
RETURNS JSONB
LANGUAGE plpgsql
AS $BODY$
DECLARE
    v_Parts TEXT[];
    v_Changes JSONB;
    v_RowsAffected INT;
    v_UpdatedRecord {{QUALIFIED_TABLE}}%ROWTYPE;
{{KEY_DECLARATIONS}}
BEGIN
    IF p_RowId IS NULL OR p_RowId = '' THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Row id is required',
            'errorCode', 'INVALID_INPUT'
        );
    END IF;
{{KEY_PARSING}}
    v_Changes := COALESCE(NULLIF(p_ChangesJson, ''), '{}')::JSONB;

    UPDATE {{QUALIFIED_TABLE}}
    SET
{{SET_CLAUSE}}
    WHERE {{KEY_WHERE}}
    RETURNING * INTO v_UpdatedRecord;

    GET DIAGNOSTICS v_RowsAffected = ROW_COUNT;

    IF v_RowsAffected = 0 THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Record not found',
            'errorCode', 'NOT_FOUND'
        );
    END IF;

    RETURN jsonb_build_object(
        'success', true,
        'message', 'Record updated successfully',
        'rowsAffected', v_RowsAffected,
        'updatedRow', to_jsonb(v_UpdatedRecord) || jsonb_build_object('Id', {{UPDATED_ID}})
    );
EXCEPTION
    WHEN OTHERS THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Error updating record: ' || SQLERRM,
            'errorCode', 'UPDATE_ERROR'
        );
END;
$BODY$;

GRANT EXECUTE ON FUNCTION public.{{PROC_NAME}}(TEXT, TEXT, INTEGER) TO PUBLIC;
"""

DELETE_TEMPLATE = """-- Auto-generated DELETE procedure for {{TABLE_NAME}}
CREATE OR REPLACE FUNCTION public.{{PROC_NAME}}(
    p_RowId TEXT,
    p_UserId INTEGER DEFAULT NULL
)
RETURNS JSONB
LANGUAGE plpgsql
AS $BODY$
DECLARE
    v_Parts TEXT[];
    v_RowsAffected INT;
{{KEY_DECLARATIONS}}
BEGIN
    IF p_RowId IS NULL OR p_RowId = '' THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Row id is required',
            'errorCode', 'INVALID_INPUT'
        );
    END IF;
{{KEY_PARSING}}
    DELETE FROM {{QUALIFIED_TABLE}}
    WHERE {{KEY_WHERE}};

    GET DIAGNOSTICS v_RowsAffected = ROW_COUNT;

    IF v_RowsAffected = 0 THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Record not found',
            'errorCode', 'NOT_FOUND'
        );
    END IF;

    RETURN jsonb_build_object(
        'success', true,
        'message', 'Record deleted successfully',
        'rowsAffected', v_RowsAffected
    );
EXCEPTION
    WHEN OTHERS THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', 'Error deleting record: ' || SQLERRM,
            'errorCode', 'DELETE_ERROR'
        );
END;
$BODY$;

GRANT EXECUTE ON FUNCTION public.{{PROC_NAME}}(TEXT, INTEGER) TO PUBLIC;
"""


@dataclass
class CrudProcedures:
    insert_sql: str
    update_sql: str
    delete_sql: str

    def all(self) -> List[str]:
        return [self.insert_sql, self.update_sql, self.delete_sql]


def _key_var(index: int) -> str:
    return f"v_Key{index}"


def _value_expression(json_var: str, column: ColumnInfo, blank_as_null: bool = False) -> str:
    """Text value for the column from a JSONB variable, cast to the column type."""
    raw = f"{json_var}->>{quote_literal(column.name)}"
    if is_text_type(column.data_type):
        return f"NULLIF({raw}, '')" if blank_as_null else raw
    return f"NULLIF({raw}, ''){sql_cast(column.data_type, column.udt_name)}"


def build_key_declarations(key_columns: List[ColumnInfo]) -> str:
    return "\n".join(f"    {_key_var(i)} TEXT;" for i in range(1, len(key_columns) + 1))


def build_key_parsing(key_columns: List[ColumnInfo]) -> str:
    """Row id parsing: single keys are taken whole, composite keys are split on '_'."""
    if len(key_columns) == 1:
        return f"\n    {_key_var(1)} := p_RowId;\n"

    expected = ROW_ID_SEPARATOR.join(c.name for c in key_columns)
    lines = [
        "",
        f"    v_Parts := string_to_array(p_RowId, {quote_literal(ROW_ID_SEPARATOR)});",
        "",
        f"    IF array_length(v_Parts, 1) IS DISTINCT FROM {len(key_columns)} THEN",
        "        RETURN jsonb_build_object(",
        "            'success', false,",
        f"            'message', {quote_literal('Invalid row id format. Expected: ' + expected)},",
        "            'errorCode', 'INVALID_KEY_FORMAT'",
        "        );",
        "    END IF;",
        "",
    ]
    for index in range(1, len(key_columns) + 1):
        lines.append(f"    {_key_var(index)} := v_Parts[{index}];")
    lines.append("")
    return "\n".join(lines)


def build_key_where(key_columns: List[ColumnInfo]) -> str:
    conditions = []
    for index, column in enumerate(key_columns, start=1):
        cast = sql_cast(column.data_type, column.udt_name)
        conditions.append(f"{quote_ident(column.name)} = {_key_var(index)}{cast}")
    return "\n      AND ".join(conditions)


def build_record_id(record_var: str, key_columns: List[ColumnInfo]) -> str:
    parts = [f"{record_var}.{quote_ident(c.name)}::TEXT" for c in key_columns]
    return f" || {quote_literal(ROW_ID_SEPARATOR)} || ".join(parts)


def build_required_checks(editable_columns: List[ColumnInfo]) -> str:
    checks = []
    for column in editable_columns:
        if not column.is_required:
            continue
        key = quote_literal(column.name)
        message = quote_literal(f"{title_case(column.name)} is required")
        checks.append(
            f"""
    IF NOT (v_FieldValues ? {key}) OR NULLIF(v_FieldValues->>{key}, '') IS NULL THEN
        RETURN jsonb_build_object(
            'success', false,
            'message', {message},
            'errorCode', 'REQUIRED_FIELD_MISSING'
        );
    END IF;"""
        )
    return "".join(checks)


def build_collect_values(editable_columns: List[ColumnInfo]) -> str:
    """Only supplied fields are inserted so column defaults still apply."""
    blocks = []
    for column in editable_columns:
        key = quote_literal(column.name)
        blocks.append(
            f"""
    IF v_FieldValues ? {key} THEN
        v_Columns := array_append(v_Columns, {quote_literal(quote_ident(column.name))});
        v_Values := array_append(v_Values, format('%L', {_value_expression('v_FieldValues', column)}));
    END IF;"""
        )
    return "".join(blocks)


def build_set_clause(update_columns: List[ColumnInfo]) -> str:
    """Each column takes the supplied value, or keeps its current value when absent or empty."""
    lines = []
    for column in update_columns:
        name = quote_ident(column.name)
        lines.append(f"        {name} = COALESCE({_value_expression('v_Changes', column, blank_as_null=True)}, {name})")
    return ",\n".join(lines)


def _resolve(introspector: SchemaIntrospector, table_name: str, entity_name: str,
             primary_key_cols: List[str], editable_cols: List[str]):
    if not ENTITY_PATTERN.fullmatch(entity_name or ""):
        raise ValueError(f"Invalid entity name: {entity_name}")
    if not primary_key_cols:
        raise ValueError("At least one primary key column is required")
    if not introspector.table_exists(table_name):
        raise ValueError(f"Table {table_name} not found in schema {introspector.schema}")
    key_columns = introspector.resolve_columns(table_name, primary_key_cols, required=True)
    editable_columns = introspector.resolve_columns(table_name, editable_cols)
    return key_columns, editable_columns


def generate_insert_procedure(introspector: SchemaIntrospector, table_name: str, entity_name: str,
                              primary_key_cols: List[str], editable_cols: List[str]) -> str:
    key_columns, editable_columns = _resolve(
        introspector, table_name, entity_name, primary_key_cols, editable_cols
    )
    proc_name = insert_procedure_name(entity_name)
    sql = render(
        INSERT_TEMPLATE,
        TABLE_NAME=table_name,
        PROC_NAME=proc_name,
        QUALIFIED_TABLE=qualified_table(introspector.schema, table_name),
        REQUIRED_CHECKS=build_required_checks(editable_columns),
        COLLECT_VALUES=build_collect_values(editable_columns),
        RECORD_ID=build_record_id("v_NewRecord", key_columns),
    )
    logger.info("insert_procedure_generated", procedure=proc_name, table=table_name)
    return sql


def generate_update_procedure(introspector: SchemaIntrospector, table_name: str, entity_name: str,
                              primary_key_cols: List[str], editable_cols: List[str]) -> str:
    key_columns, editable_columns = _resolve(
        introspector, table_name, entity_name, primary_key_cols, editable_cols
    )

    # Key columns are updatable too
    update_columns = list(key_columns)
    for column in editable_columns:
        if column.name not in {c.name for c in update_columns}:
            update_columns.append(column)

    proc_name = update_procedure_name(entity_name)
    sql = render(
        UPDATE_TEMPLATE,
        TABLE_NAME=table_name,
        PROC_NAME=proc_name,
        QUALIFIED_TABLE=qualified_table(introspector.schema, table_name),
        KEY_DECLARATIONS=build_key_declarations(key_columns),
        KEY_PARSING=build_key_parsing(key_columns),
        SET_CLAUSE=build_set_clause(update_columns),
        KEY_WHERE=build_key_where(key_columns),
        UPDATED_ID=build_record_id("v_UpdatedRecord", key_columns),
    )
    logger.info("update_procedure_generated", procedure=proc_name, table=table_name)
    return sql


def generate_delete_procedure(introspector: SchemaIntrospector, table_name: str, entity_name: str,
                              primary_key_cols: List[str]) -> str:
    key_columns, _ = _resolve(introspector, table_name, entity_name, primary_key_cols, [])
    proc_name = delete_procedure_name(entity_name)
    sql = render(
        DELETE_TEMPLATE,
        TABLE_NAME=table_name,
        PROC_NAME=proc_name,
        QUALIFIED_TABLE=qualified_table(introspector.schema, table_name),
        KEY_DECLARATIONS=build_key_declarations(key_columns),
        KEY_PARSING=build_key_parsing(key_columns),
        KEY_WHERE=build_key_where(key_columns),
    )
    logger.info("delete_procedure_generated", procedure=proc_name, table=table_name)
    return sql


def generate_crud_procedures(introspector: SchemaIntrospector, table_name: str, entity_name: str,
                             primary_key_cols: List[str], editable_cols: List[str]) -> CrudProcedures:
    """Generate insert, update and delete procedures together."""
    return CrudProcedures(
        insert_sql=generate_insert_procedure(
            introspector, table_name, entity_name, primary_key_cols, editable_cols
        ),
        update_sql=generate_update_procedure(
            introspector, table_name, entity_name, primary_key_cols, editable_cols
        ),
        delete_sql=generate_delete_procedure(
            introspector, table_name, entity_name, primary_key_cols
        ),
    )
