"""
Tests for the registry-gated dynamic grid service
"""
import json
import pytest
from sqlalchemy.exc import OperationalError

from gridportal.schemas import (
    GridDataRequest, RowUpdateRequest, RowDeleteRequest, RowCreateRequest, DropdownValuesRequest
)
from gridportal.services.grid import (
    DynamicGridService, GridAccessDeniedError, InvalidGridRequestError, InvalidProcedureNameError
)
from gridportal.services.grid.export import rows_to_dataframe, render_export
from gridportal.schemas import ColumnDefinition

from conftest import FakeExecutor, register_procedure, add_column_metadata


GRID_RESULT = {
    "rows": [{"Id": "1", "name": "Alice", "salary": 10}, {"Id": "2", "name": "Bob", "salary": 20}],
    "columns": [
        {"field": "actions", "headerName": "Actions", "pinned": True, "sortable": False, "filter": False},
        {"field": "name", "headerName": "Name", "type": "text"},
        {"field": "salary", "headerName": "Salary", "type": "number"},
    ],
    "totalCount": 31,
}


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def service(db_session, executor):
    return DynamicGridService(db_session, executor)


class TestProcedureAccess:
    """Test registry gating"""

    def test_access_by_role(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Employees", ["Admin", "User"])
        assert service.validate_procedure_access("sp_Grid_Employees", ["User"])
        assert not service.validate_procedure_access("sp_Grid_Employees", ["Manager"])

    def test_unregistered_denied(self, service):
        assert not service.validate_procedure_access("sp_Grid_Unknown", ["Admin"])

    def test_inactive_denied_even_without_auth(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Old", [], is_active=False, requires_auth=False)
        assert not service.validate_procedure_access("sp_Grid_Old", ["Admin"])

    def test_requires_auth_false_allows_any_role(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Public", [], requires_auth=False)
        assert service.validate_procedure_access("sp_Grid_Public", ["Whatever"])

    def test_malformed_allowed_roles_allow_nobody(self, db_session, service):
        procedure = register_procedure(db_session, "sp_Grid_Broken", ["Admin"])
        procedure.allowed_roles = "not json"
        db_session.commit()
        assert not service.validate_procedure_access("sp_Grid_Broken", ["Admin"])

    def test_execute_denied_never_calls_database(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["Admin"])
        with pytest.raises(GridAccessDeniedError):
            service.execute_grid_procedure(GridDataRequest(procedure_name="sp_Grid_Employees"), ["User"])
        assert executor.calls == []

    def test_registered_name_outside_pattern_rejected(self, db_session, service, executor):
        register_procedure(db_session, "get_everything", ["Admin"])
        with pytest.raises(InvalidProcedureNameError):
            service.execute_grid_procedure(GridDataRequest(procedure_name="get_everything"), ["Admin"])
        assert executor.calls == []


class TestGridFetch:
    """Test grid data fetch"""

    def test_fetch_page(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"], database_name="HR")
        executor.results["sp_Grid_Employees"] = GRID_RESULT

        response = service.execute_grid_procedure(
            GridDataRequest(procedure_name="sp_Grid_Employees", page_number=2, page_size=10,
                            sort_column="name", sort_direction="desc", search_term="a"),
            ["User"]
        )

        database, name, params = executor.calls[0]
        assert database == "HR"
        assert name == "sp_Grid_Employees"
        assert list(params) == [
            "p_PageNumber", "p_PageSize", "p_StartRow", "p_EndRow",
            "p_SortColumn", "p_SortDirection", "p_FilterJson", "p_SearchTerm",
        ]
        assert params["p_PageNumber"] == 2
        assert params["p_SortDirection"] == "DESC"
        assert params["p_FilterJson"] is None
        assert params["p_SearchTerm"] == "a"

        assert response.total_count == 31
        assert response.total_pages == 4
        assert response.last_row == 31
        assert len(response.rows) == 2
        assert [c.field for c in response.columns] == ["actions", "name", "salary"]
        assert response.metadata["rowModelType"] == "clientSide"
        assert response.metadata["displayName"] == "Employees"

    def test_result_as_json_text(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        executor.results["sp_Grid_Employees"] = json.dumps(GRID_RESULT)
        response = service.execute_grid_procedure(GridDataRequest(procedure_name="sp_Grid_Employees"), ["User"])
        assert response.total_count == 31

    def test_null_result_is_empty(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        response = service.execute_grid_procedure(GridDataRequest(procedure_name="sp_Grid_Employees"), ["User"])
        assert response.rows == []
        assert response.total_count == 0
        assert response.metadata["procedureName"] == "sp_Grid_Employees"

    def test_drill_down_filters_override(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        service.execute_grid_procedure(
            GridDataRequest(
                procedure_name="sp_Grid_Employees",
                filter_json=json.dumps({"name": {"filterType": "text", "type": "contains", "filter": "a"},
                                        "dept": {"filterType": "text", "type": "equals", "filter": "X"}}),
                drill_down_json=json.dumps({"dept": 7})
            ),
            ["User"]
        )
        filters = json.loads(executor.calls[0][2]["p_FilterJson"])
        assert filters["dept"] == 7
        assert filters["name"]["filter"] == "a"

    def test_invalid_filter_json(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        with pytest.raises(InvalidGridRequestError, match="filterJson is not valid JSON"):
            service.execute_grid_procedure(
                GridDataRequest(procedure_name="sp_Grid_Employees", filter_json="{oops"), ["User"]
            )
        with pytest.raises(InvalidGridRequestError, match="drillDownJson must be a JSON object"):
            service.execute_grid_procedure(
                GridDataRequest(procedure_name="sp_Grid_Employees", drill_down_json="[1]"), ["User"]
            )

    def test_window_request(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        executor.results["sp_Grid_Employees"] = dict(GRID_RESULT, totalCount=50000)
        response = service.execute_grid_procedure(
            GridDataRequest(procedure_name="sp_Grid_Employees", start_row=1, end_row=100), ["User"]
        )
        params = executor.calls[0][2]
        assert params["p_StartRow"] == 1
        assert params["p_EndRow"] == 100
        assert response.metadata["rowModelType"] == "infinite"

    def test_column_metadata_merged(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        add_column_metadata(
            db_session, "sp_Grid_Employees", "name",
            cell_editor="dropdown", dropdown_type="static", static_values_json='["Alice", "Bob"]'
        )
        add_column_metadata(
            db_session, "sp_Grid_Employees", "salary",
            link_config={"enabled": True, "drillDown": {"enabled": True, "targetProcedure": "sp_Grid_Pay"}}
        )
        executor.results["sp_Grid_Employees"] = GRID_RESULT

        response = service.execute_grid_procedure(GridDataRequest(procedure_name="sp_Grid_Employees"), ["User"])
        columns = {c.field: c for c in response.columns}
        assert columns["name"].dropdown_config["staticValues"] == ["Alice", "Bob"]
        assert columns["salary"].link_config["drillDown"]["targetProcedure"] == "sp_Grid_Pay"
        assert columns["actions"].dropdown_config is None


class TestRowMutations:
    """Test update, delete and create dispatch"""

    def test_update_resolves_exact_companion(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User", "Manager"])
        register_procedure(db_session, "sp_Grid_Update_Employees", ["Manager"])
        executor.results["sp_Grid_Update_Employees"] = {
            "success": True, "message": "Record updated successfully", "rowsAffected": 1,
            "updatedRow": {"Id": "5", "name": "Eve"}
        }

        response = service.update_row(
            RowUpdateRequest(procedure_name="sp_Grid_Employees", row_id=5, changes={"name": "Eve"}),
            ["Manager"], user_id=3
        )

        assert response.success
        assert response.rows_affected == 1
        assert response.updated_row["name"] == "Eve"
        _, name, params = executor.calls[0]
        assert name == "sp_Grid_Update_Employees"
        assert params == {"p_RowId": "5", "p_ChangesJson": '{"name": "Eve"}', "p_UserId": 3}

    def test_delete_resolves_singular_companion(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Buses", ["User"])
        register_procedure(db_session, "sp_Grid_Delete_Bus", ["User"])
        executor.results["sp_Grid_Delete_Bus"] = {"success": True, "rowsAffected": 1}

        response = service.delete_row(RowDeleteRequest(procedure_name="sp_Grid_Buses", row_id="1_101"), ["User"])

        assert response.success
        assert executor.calls[0][1] == "sp_Grid_Delete_Bus"
        assert executor.calls[0][2] == {"p_RowId": "1_101"}

    def test_companion_not_accessible_is_not_supported(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        register_procedure(db_session, "sp_Grid_Update_Employees", ["Admin"])

        response = service.update_row(
            RowUpdateRequest(procedure_name="sp_Grid_Employees", row_id=1, changes={}), ["User"], user_id=1
        )

        assert not response.success
        assert response.error_code == "UPDATE_NOT_SUPPORTED"
        assert response.message == "Update not supported for this grid"
        assert executor.calls == []

    def test_missing_companions(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        delete = service.delete_row(RowDeleteRequest(procedure_name="sp_Grid_Employees", row_id=1), ["User"])
        create = service.create_row(
            RowCreateRequest(procedure_name="sp_Grid_Employees", field_values={"name": "x"}), ["User"], user_id=1
        )
        assert delete.error_code == "DELETE_NOT_SUPPORTED"
        assert create.error_code == "INSERT_NOT_SUPPORTED"

    def test_mutation_requires_grid_access(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Employees", ["Admin"])
        register_procedure(db_session, "sp_Grid_Update_Employees", ["User"])
        with pytest.raises(GridAccessDeniedError):
            service.update_row(
                RowUpdateRequest(procedure_name="sp_Grid_Employees", row_id=1, changes={}), ["User"], user_id=1
            )

    def test_database_error(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        register_procedure(db_session, "sp_Grid_Insert_Employees", ["User"])
        executor.errors["sp_Grid_Insert_Employees"] = OperationalError("SELECT", {}, Exception("down"))

        response = service.create_row(
            RowCreateRequest(procedure_name="sp_Grid_Employees", field_values={"name": "x"}), ["User"], user_id=1
        )

        assert not response.success
        assert response.error_code == "DB_ERROR"
        assert response.message == "Database error occurred"

    def test_procedure_failure_passed_through(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        register_procedure(db_session, "sp_Grid_Insert_Employees", ["User"])
        executor.results["sp_Grid_Insert_Employees"] = {
            "success": False, "message": "Name is required", "errorCode": "REQUIRED_FIELD_MISSING"
        }

        response = service.create_row(
            RowCreateRequest(procedure_name="sp_Grid_Employees", field_values={}), ["User"], user_id=9
        )

        assert not response.success
        assert response.error_code == "REQUIRED_FIELD_MISSING"
        assert executor.calls[0][2] == {"p_FieldValuesJson": "{}", "p_UserId": 9}

    def test_no_response(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        register_procedure(db_session, "sp_Grid_Delete_Employees", ["User"])
        response = service.delete_row(RowDeleteRequest(procedure_name="sp_Grid_Employees", row_id=1), ["User"])
        assert not response.success
        assert response.message == "No response from delete procedure"


class TestRegistryQueries:
    """Test procedure listing, column state and drill-down config"""

    def test_available_procedures_filtered_and_ordered(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Zeta", ["User"], display_name="Zeta")
        register_procedure(db_session, "sp_Grid_Alpha", ["User"], display_name="Alpha")
        register_procedure(db_session, "sp_Grid_Secret", ["Admin"], display_name="Secret")
        register_procedure(db_session, "sp_Grid_Off", ["User"], display_name="Off", is_active=False)

        procedures = service.get_available_procedures(["User"])
        assert [p.display_name for p in procedures] == ["Alpha", "Zeta"]
        assert procedures[0].allowed_roles == ["User"]

    def test_column_state_round_trip(self, service):
        assert service.get_column_state(1, "sp_Grid_Employees") is None
        service.save_column_state(1, "sp_Grid_Employees", '[{"colId": "name"}]')
        service.save_column_state(1, "sp_Grid_Employees", '[{"colId": "salary"}]')
        assert service.get_column_state(1, "sp_Grid_Employees") == '[{"colId": "salary"}]'
        assert service.get_column_state(2, "sp_Grid_Employees") is None

    def test_drill_down_config(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Buses", ["User"])
        add_column_metadata(
            db_session, "sp_Grid_Buses", "ibus",
            link_config={"enabled": True, "drillDown": {
                "enabled": True, "targetProcedure": "sp_Grid_Bus_Aclines",
                "filterParams": [{"sourceFields": ["ibus"], "targetColumn": "ibus"}]
            }}
        )
        config = service.get_drill_down_config("sp_Grid_Buses", "ibus", ["User"])
        assert config["targetProcedure"] == "sp_Grid_Bus_Aclines"

        with pytest.raises(InvalidGridRequestError, match="Drill-down is not configured for column name"):
            service.get_drill_down_config("sp_Grid_Buses", "name", ["User"])

    def test_disabled_link_has_no_drill_down(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Buses", ["User"])
        add_column_metadata(
            db_session, "sp_Grid_Buses", "ibus",
            link_config={"enabled": False, "drillDown": {"enabled": True, "targetProcedure": "sp_Grid_X"}}
        )
        with pytest.raises(InvalidGridRequestError):
            service.get_drill_down_config("sp_Grid_Buses", "ibus", ["User"])


class TestDropdownValues:
    """Test dropdown option lookup"""

    def request(self, **kwargs):
        values = dict(procedure_name="sp_Grid_Aclines", master_table="Buses",
                      value_field="ibus", label_field="name")
        values.update(kwargs)
        return DropdownValuesRequest(**values)

    def test_static_values(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Aclines", ["User"])
        add_column_metadata(
            db_session, "sp_Grid_Aclines", "status",
            cell_editor="dropdown", dropdown_type="static",
            static_values_json='[{"value": 1, "label": "In service"}, "Out"]'
        )
        options = service.get_dropdown_values(self.request(column_name="status"), ["User"])
        assert [(o.value, o.label) for o in options] == [(1, "In service"), ("Out", "Out")]
        assert executor.queries == []

    def test_dynamic_values_use_stored_filter(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Aclines", ["User"], database_name="Powerflow")
        add_column_metadata(
            db_session, "sp_Grid_Aclines", "ibus",
            cell_editor="dropdown", dropdown_type="dynamic", master_table="public.Buses",
            value_field="ibus", label_field="name", filter_condition='"CaseNumber" = @param_CaseNumber'
        )
        executor.rows = [{"value": 101, "label": "North"}, {"value": 102, "label": None}]

        options = service.get_dropdown_values(
            self.request(master_table="PUBLIC.buses", value_field="IBUS", label_field="Name",
                         filter_condition="1=1; DROP TABLE users", row_context={"casenumber": 3}),
            ["User"]
        )

        database, sql, params = executor.queries[0]
        assert database == "Powerflow"
        assert sql == ('SELECT DISTINCT "ibus" AS value, "name" AS label FROM "public"."Buses" '
                       'WHERE "CaseNumber" = :param_CaseNumber ORDER BY label')
        assert params == {"param_CaseNumber": 3}
        assert "DROP" not in sql
        assert [(o.value, o.label) for o in options] == [(101, "North"), (102, "")]

    def test_unconfigured_dropdown_rejected(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Aclines", ["User"])
        with pytest.raises(InvalidGridRequestError, match="Dropdown is not configured"):
            service.get_dropdown_values(self.request(), ["User"])
        assert executor.queries == []

    def test_invalid_stored_identifiers_rejected(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Aclines", ["User"])
        add_column_metadata(
            db_session, "sp_Grid_Aclines", "ibus",
            cell_editor="dropdown", dropdown_type="dynamic", master_table="Buses; DROP",
            value_field="ibus", label_field="name"
        )
        with pytest.raises(InvalidGridRequestError, match="Invalid master table"):
            service.get_dropdown_values(self.request(column_name="ibus"), ["User"])

    def test_dropdown_requires_access(self, db_session, service):
        register_procedure(db_session, "sp_Grid_Aclines", ["Admin"])
        with pytest.raises(GridAccessDeniedError):
            service.get_dropdown_values(self.request(), ["User"])


class TestExport:
    """Test CSV and Excel export"""

    def test_export_csv(self, db_session, service, executor):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        executor.results["sp_Grid_Employees"] = GRID_RESULT

        content, media_type, extension, count = service.export_rows(
            GridDataRequest(procedure_name="sp_Grid_Employees", page_number=3, search_term="a"),
            ["User"], "csv", max_rows=5000
        )

        params = executor.calls[0][2]
        assert params["p_PageNumber"] == 1
        assert params["p_PageSize"] == 5000
        assert params["p_SearchTerm"] == "a"
        assert media_type == "text/csv"
        assert extension == "csv"
        assert count == 2
        lines = content.decode("utf-8").splitlines()
        assert lines[0] == "Name,Salary"
        assert lines[1] == "Alice,10"

    def test_export_xlsx(self):
        columns = [ColumnDefinition(field="name", header_name="Name")]
        df = rows_to_dataframe([{"name": "Alice"}], columns)
        content, media_type, extension = render_export(df, "xlsx", "A very long sheet name that exceeds the limit")
        assert extension == "xlsx"
        assert media_type.endswith("spreadsheetml.sheet")
        assert content[:2] == b"PK"

    def test_unsupported_format(self):
        df = rows_to_dataframe([], [])
        with pytest.raises(InvalidGridRequestError, match="Unsupported export format: pdf"):
            render_export(df, "pdf")
