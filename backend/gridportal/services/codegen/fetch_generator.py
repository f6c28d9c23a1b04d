"""
Grid Fetch Procedure Generator

Builds the CREATE FUNCTION text for sp_Grid_<Entity>: paging, global search,
grid filter model parsing, whitelisted sorting, column definitions and the
ColumnMetadata dropdown/link merge.
"""
import json
from typing import List
import structlog

from gridportal.services.codegen.introspection import SchemaIntrospector, ColumnInfo
from gridportal.services.codegen.sql_utils import (
    ENTITY_PATTERN, quote_ident, quote_literal, qualified_table, title_case,
    dollar_quote, literal_list, render
)
from gridportal.services.codegen.type_map import grid_type, column_def_type
from gridportal.services.grid.naming import fetch_procedure_name

logger = structlog.get_logger()

ACTIONS_COLUMN = {
    "field": "actions",
    "headerName": "Actions",
    "width": 120,
    "sortable": False,
    "filter": False,
    "pinned": True,
}

FILTER_PARSER_TEMPLATE = """
    IF p_FilterJson IS NOT NULL AND p_FilterJson <> '' THEN
        v_FilterJson := p_FilterJson::JSONB;

        FOR v_FilterKey, v_FilterValue IN SELECT key, value FROM jsonb_each(v_FilterJson)
        LOOP
            v_ColumnType := CASE v_FilterKey
{{COLUMN_TYPE_MAP}}
                ELSE NULL
            END;
            v_Condition := NULL;

            IF v_ColumnType IS NULL THEN
                CONTINUE;
            END IF;

            IF jsonb_typeof(v_FilterValue) <> 'object' THEN
                -- Plain value: equality match (drill-down filters)
                IF jsonb_typeof(v_FilterValue) = 'null' THEN
                    v_Condition := format('a.%I IS NULL', v_FilterKey);
                ELSE
                    v_Condition := format('a.%I::TEXT = %L', v_FilterKey, v_FilterValue #>> '{}');
                END IF;

            ELSIF v_FilterValue ? 'filterType' THEN
                v_FilterType := COALESCE(v_FilterValue->>'type', 'equals');

                IF v_FilterType = 'blank' THEN
                    IF v_ColumnType = 'text' THEN
                        v_Condition := format('(a.%I IS NULL OR a.%I = '''')', v_FilterKey, v_FilterKey);
                    ELSE
                        v_Condition := format('a.%I IS NULL', v_FilterKey);
                    END IF;
                ELSIF v_FilterType = 'notBlank' THEN
                    IF v_ColumnType = 'text' THEN
                        v_Condition := format('(a.%I IS NOT NULL AND a.%I <> '''')', v_FilterKey, v_FilterKey);
                    ELSE
                        v_Condition := format('a.%I IS NOT NULL', v_FilterKey);
                    END IF;

                ELSIF v_ColumnType = 'text' THEN
                    v_FilterText := v_FilterValue->>'filter';
                    IF v_FilterText IS NOT NULL THEN
                        v_Condition := CASE v_FilterType
                            WHEN 'contains' THEN format('a.%I ILIKE %L', v_FilterKey, '%' || v_FilterText || '%')
                            WHEN 'notContains' THEN format('a.%I NOT ILIKE %L', v_FilterKey, '%' || v_FilterText || '%')
                            WHEN 'equals' THEN format('a.%I ILIKE %L', v_FilterKey, v_FilterText)
                            WHEN 'notEqual' THEN format('a.%I NOT ILIKE %L', v_FilterKey, v_FilterText)
                            WHEN 'startsWith' THEN format('a.%I ILIKE %L', v_FilterKey, v_FilterText || '%')
                            WHEN 'endsWith' THEN format('a.%I ILIKE %L', v_FilterKey, '%' || v_FilterText)
                            ELSE format('a.%I ILIKE %L', v_FilterKey, '%' || v_FilterText || '%')
                        END;
                    END IF;

                ELSIF v_ColumnType = 'number' THEN
                    v_FilterNumber := NULLIF(v_FilterValue->>'filter', '')::NUMERIC;
                    v_FilterNumberTo := NULLIF(v_FilterValue->>'filterTo', '')::NUMERIC;
                    IF v_FilterNumber IS NOT NULL THEN
                        v_Condition := CASE v_FilterType
                            WHEN 'equals' THEN format('a.%I = %s', v_FilterKey, v_FilterNumber)
                            WHEN 'notEqual' THEN format('a.%I <> %s', v_FilterKey, v_FilterNumber)
                            WHEN 'lessThan' THEN format('a.%I < %s', v_FilterKey, v_FilterNumber)
                            WHEN 'lessThanOrEqual' THEN format('a.%I <= %s', v_FilterKey, v_FilterNumber)
                            WHEN 'greaterThan' THEN format('a.%I > %s', v_FilterKey, v_FilterNumber)
                            WHEN 'greaterThanOrEqual' THEN format('a.%I >= %s', v_FilterKey, v_FilterNumber)
                            WHEN 'inRange' THEN format('a.%I BETWEEN %s AND %s', v_FilterKey, v_FilterNumber, COALESCE(v_FilterNumberTo, v_FilterNumber))
                            ELSE format('a.%I = %s', v_FilterKey, v_FilterNumber)
                        END;
                    END IF;

                ELSIF v_ColumnType = 'date' THEN
                    v_FilterText := NULLIF(v_FilterValue->>'dateFrom', '');
                    v_FilterTextTo := NULLIF(v_FilterValue->>'dateTo', '');
                    IF v_FilterText IS NOT NULL THEN
                        v_Condition := CASE v_FilterType
                            WHEN 'equals' THEN format('a.%I::DATE = %L::DATE', v_FilterKey, v_FilterText)
                            WHEN 'notEqual' THEN format('a.%I::DATE <> %L::DATE', v_FilterKey, v_FilterText)
                            WHEN 'lessThan' THEN format('a.%I < %L::TIMESTAMP', v_FilterKey, v_FilterText)
                            WHEN 'greaterThan' THEN format('a.%I > %L::TIMESTAMP', v_FilterKey, v_FilterText)
                            WHEN 'inRange' THEN format('a.%I BETWEEN %L::TIMESTAMP AND %L::TIMESTAMP', v_FilterKey, v_FilterText, COALESCE(v_FilterTextTo, v_FilterText))
                            ELSE format('a.%I::DATE = %L::DATE', v_FilterKey, v_FilterText)
                        END;
                    END IF;

                ELSIF v_ColumnType = 'boolean' THEN
                    v_FilterText := NULLIF(v_FilterValue->>'filter', '');
                    IF v_FilterText IS NOT NULL THEN
                        v_Condition := format('a.%I = %L::BOOLEAN', v_FilterKey, v_FilterText);
                    END IF;
                END IF;
            END IF;

            IF v_Condition IS NOT NULL THEN
                IF v_FilterWhere <> '' THEN
                    v_FilterWhere := v_FilterWhere || ' AND ';
                END IF;
                v_FilterWhere := v_FilterWhere || v_Condition;
            END IF;
        END LOOP;
    END IF;
"""

COLUMN_METADATA_MERGE_TEMPLATE = """
    -- Dropdown configurations
    SELECT jsonb_object_agg(
        cm."ColumnName",
        jsonb_build_object(
            'type', cm."DropdownType",
            'staticValues', CASE WHEN cm."StaticValuesJson" IS NOT NULL THEN cm."StaticValuesJson"::JSONB ELSE NULL END,
            'masterTable', cm."MasterTable",
            'valueField', cm."ValueField",
            'labelField', cm."LabelField",
            'filterCondition', cm."FilterCondition",
            'dependsOn', CASE WHEN cm."DependsOnJson" IS NOT NULL THEN cm."DependsOnJson"::JSONB ELSE NULL END
        )
    )
    INTO v_DropdownConfigs
    FROM "ColumnMetadata" cm
    WHERE cm."ProcedureName" = {{PROC_LITERAL}}
      AND cm."IsActive" = true
      AND cm."CellEditor" = 'dropdown';

    -- Link configurations
    SELECT jsonb_object_agg(cm."ColumnName", cm."LinkConfig")
    INTO v_LinkConfigs
    FROM "ColumnMetadata" cm
    WHERE cm."ProcedureName" = {{PROC_LITERAL}}
      AND cm."IsActive" = true
      AND cm."LinkConfig" IS NOT NULL
      AND (cm."LinkConfig"->>'enabled')::BOOLEAN = true;

    v_DropdownConfigs := COALESCE(v_DropdownConfigs, '{}'::JSONB);
    v_LinkConfigs := COALESCE(v_LinkConfigs, '{}'::JSONB);

    SELECT jsonb_agg(
        col
        || CASE WHEN v_DropdownConfigs ? (col->>'field')
                THEN jsonb_build_object('dropdownConfig', v_DropdownConfigs->(col->>'field'))
                ELSE '{}'::JSONB END
        || CASE WHEN v_LinkConfigs ? (col->>'field')
                THEN jsonb_build_object('linkConfig', v_LinkConfigs->(col->>'field'))
                ELSE '{}'::JSONB END
        ORDER BY ord
    )
    INTO v_Columns
    FROM jsonb_array_elements(v_BaseColumns) WITH ORDINALITY AS e(col, ord);
"""

FETCH_PROCEDURE_TEMPLATE = """-- Auto-generated FETCH procedure for {{TABLE_NAME}}
CREATE OR REPLACE FUNCTION public.{{PROC_NAME}}(
    p_PageNumber INTEGER DEFAULT 1,
    p_PageSize INTEGER DEFAULT 15,
    p_StartRow INTEGER DEFAULT NULL,
    p_EndRow INTEGER DEFAULT NULL,
    p_SortColumn VARCHAR DEFAULT NULL,
    p_SortDirection VARCHAR DEFAULT 'ASC',
    p_FilterJson TEXT DEFAULT NULL,
    p_SearchTerm VARCHAR DEFAULT NULL
)
RETURNS JSONB
LANGUAGE plpgsql
AS $BODY$
DECLARE
    v_Offset INT;
    v_FetchSize INT;
    v_Data JSONB;
    v_Columns JSONB;
    v_BaseColumns JSONB;
    v_DropdownConfigs JSONB;
    v_LinkConfigs JSONB;
    v_TotalCount INT;
    v_OrderBy TEXT;
    v_FilterWhere TEXT := '';
    v_FilterJson JSONB;
    v_FilterKey TEXT;
    v_FilterValue JSONB;
    v_FilterType TEXT;
    v_ColumnType TEXT;
    v_Condition TEXT;
    v_FilterText TEXT;
    v_FilterTextTo TEXT;
    v_FilterNumber NUMERIC;
    v_FilterNumberTo NUMERIC;
BEGIN
    IF p_StartRow IS NOT NULL AND p_EndRow IS NOT NULL THEN
        v_Offset := GREATEST(p_StartRow - 1, 0);
        v_FetchSize := GREATEST(p_EndRow - p_StartRow + 1, 0);
    ELSE
        v_Offset := (GREATEST(p_PageNumber, 1) - 1) * p_PageSize;
        v_FetchSize := p_PageSize;
    END IF;
{{FILTER_PARSER}}
    v_OrderBy := {{DEFAULT_ORDER}};
    IF p_SortColumn IS NOT NULL AND p_SortColumn IN ({{SORTABLE_COLUMNS}}) THEN
        v_OrderBy := format('a.%I %s', p_SortColumn,
            CASE WHEN upper(COALESCE(p_SortDirection, 'ASC')) = 'DESC' THEN 'DESC' ELSE 'ASC' END);
    END IF;

    EXECUTE $SQL$SELECT COUNT(*) FROM {{QUALIFIED_TABLE}} a WHERE ($1 IS NULL OR ({{SEARCH_CONDITIONS}}))$SQL$
        || CASE WHEN v_FilterWhere <> '' THEN ' AND ' || v_FilterWhere ELSE '' END
    INTO v_TotalCount
    USING p_SearchTerm;

    EXECUTE $SQL$SELECT jsonb_agg(row_to_json(t)) FROM (SELECT {{ID_EXPRESSION}}, {{SELECT_FIELDS}} FROM {{QUALIFIED_TABLE}} a WHERE ($1 IS NULL OR ({{SEARCH_CONDITIONS}}))$SQL$
        || CASE WHEN v_FilterWhere <> '' THEN ' AND ' || v_FilterWhere ELSE '' END
        || ' ORDER BY ' || v_OrderBy || ' LIMIT $2 OFFSET $3) t'
    INTO v_Data
    USING p_SearchTerm, v_FetchSize, v_Offset;

    v_BaseColumns := {{BASE_COLUMNS}}::JSONB;
    v_Columns := v_BaseColumns;
{{COLUMN_METADATA_MERGE}}
    RETURN jsonb_build_object(
        'rows', COALESCE(v_Data, '[]'::JSONB),
        'columns', COALESCE(v_Columns, '[]'::JSONB),
        'totalCount', v_TotalCount,
        'pageNumber', p_PageNumber,
        'pageSize', p_PageSize,
        'totalPages', COALESCE(CEIL(v_TotalCount::NUMERIC / NULLIF(p_PageSize, 0)), 0)
    );
END;
$BODY$;

GRANT EXECUTE ON FUNCTION public.{{PROC_NAME}}(INTEGER, INTEGER, INTEGER, INTEGER, VARCHAR, VARCHAR, TEXT, VARCHAR) TO PUBLIC;
"""


def build_id_expression(key_columns: List[ColumnInfo], alias: str = "a") -> str:
    """Synthetic "Id": key values cast to text joined by '_' in key order."""
    parts = [f"{alias}.{quote_ident(c.name)}::TEXT" for c in key_columns]
    return "(" + " || '_' || ".join(parts) + ') AS "Id"'


def build_search_conditions(display_columns: List[ColumnInfo]) -> str:
    ordered = sorted(display_columns, key=lambda c: c.ordinal_position)
    if not ordered:
        return "1=1"
    return " OR ".join(
        f"CAST(a.{quote_ident(c.name)} AS TEXT) ILIKE '%' || $1 || '%'" for c in ordered
    )


def build_column_type_map(columns: List[ColumnInfo]) -> str:
    lines = [
        f"                WHEN {quote_literal(c.name)} THEN {quote_literal(grid_type(c.data_type))}"
        for c in columns
    ]
    return "\n".join(lines)


def build_column_definitions(display_columns: List[ColumnInfo]) -> List[dict]:
    columns = [dict(ACTIONS_COLUMN)]
    for column in display_columns:
        columns.append({
            "field": column.name,
            "headerName": title_case(column.name),
            "type": column_def_type(column.data_type),
            "width": 120,
            "sortable": True,
            "filter": True,
            "editable": True,
            "cellEditor": "agTextCellEditor",
        })
    return columns


def generate_grid_fetch(
    introspector: SchemaIntrospector,
    table_name: str,
    entity_name: str,
    primary_key_cols: List[str],
    display_cols: List[str],
    include_column_metadata: bool = True
) -> str:
    """
    Generate the fetch procedure for a table.

    Column names are matched case-insensitively. A missing key column raises
    ColumnNotFoundError; a missing display column is skipped.
    """
    if not ENTITY_PATTERN.fullmatch(entity_name or ""):
        raise ValueError(f"Invalid entity name: {entity_name}")
    if not primary_key_cols:
        raise ValueError("At least one primary key column is required")
    if not introspector.table_exists(table_name):
        raise ValueError(f"Table {table_name} not found in schema {introspector.schema}")

    proc_name = fetch_procedure_name(entity_name)
    key_columns = introspector.resolve_columns(table_name, primary_key_cols, required=True)
    display_columns = introspector.resolve_columns(table_name, display_cols)

    sortable = []
    for column in display_columns + key_columns:
        if column.name not in sortable:
            sortable.append(column.name)

    select_fields = ", ".join(f"a.{quote_ident(c.name)}" for c in display_columns) or "NULL AS _empty"
    default_order = ", ".join(f"a.{quote_ident(c.name)}" for c in key_columns)

    filter_parser = render(
        FILTER_PARSER_TEMPLATE,
        COLUMN_TYPE_MAP=build_column_type_map(introspector.get_columns(table_name))
    )

    metadata_merge = ""
    if include_column_metadata:
        metadata_merge = render(COLUMN_METADATA_MERGE_TEMPLATE, PROC_LITERAL=quote_literal(proc_name))

    base_columns = json.dumps(build_column_definitions(display_columns), indent=4)

    sql = render(
        FETCH_PROCEDURE_TEMPLATE,
        TABLE_NAME=table_name,
        PROC_NAME=proc_name,
        FILTER_PARSER=filter_parser,
        DEFAULT_ORDER=quote_literal(default_order),
        SORTABLE_COLUMNS=literal_list(sortable),
        QUALIFIED_TABLE=qualified_table(introspector.schema, table_name),
        SEARCH_CONDITIONS=build_search_conditions(display_columns),
        ID_EXPRESSION=build_id_expression(key_columns),
        SELECT_FIELDS=select_fields,
        BASE_COLUMNS=dollar_quote(base_columns),
        COLUMN_METADATA_MERGE=metadata_merge,
    )

    logger.info(
        "fetch_procedure_generated",
        procedure=proc_name,
        table=table_name,
        key_columns=[c.name for c in key_columns],
        display_columns=len(display_columns)
    )
    return sql
