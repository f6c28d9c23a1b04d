"""
Tests for role management and registry administration endpoints
"""
import pytest

from gridportal.models import Role, StoredProcedureRegistry, ColumnMetadata, AuditLog

from conftest import make_user, auth_headers, register_procedure, add_column_metadata


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


def role_id(db, name):
    return db.query(Role).filter(Role.name == name).first().id


class TestRoleManagementAPI:
    """Test role CRUD and assignment"""

    def test_requires_admin(self, client, manager_user):
        response = client.get("/api/RoleManagement/roles", headers=auth_headers(manager_user))
        assert response.status_code == 403

    def test_list_roles(self, client, admin_headers):
        response = client.get("/api/RoleManagement/roles", headers=admin_headers)
        assert response.status_code == 200
        assert [r["name"] for r in response.json()["roles"]] == ["Admin", "Manager", "User"]

    def test_create_role(self, client, db_session, admin_headers):
        response = client.post("/api/RoleManagement/roles", headers=admin_headers,
                               json={"name": "Analyst", "description": "Reads reports"})
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Role created successfully"
        assert data["role"]["name"] == "Analyst"
        assert data["role"]["isActive"] is True
        assert db_session.query(AuditLog).filter(AuditLog.action == "role_create").count() == 1

    def test_create_duplicate_role(self, client, admin_headers):
        response = client.post("/api/RoleManagement/roles", headers=admin_headers, json={"name": "Manager"})
        assert response.status_code == 400
        assert response.json()["message"] == "Role 'Manager' already exists"

    def test_get_role(self, client, db_session, admin_headers):
        response = client.get(f"/api/RoleManagement/roles/{role_id(db_session, 'User')}", headers=admin_headers)
        assert response.json()["role"]["name"] == "User"

        response = client.get("/api/RoleManagement/roles/999", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Role not found"

    def test_update_role(self, client, db_session, admin_headers):
        user_role = role_id(db_session, "User")
        response = client.put(f"/api/RoleManagement/roles/{user_role}", headers=admin_headers,
                              json={"name": "Viewer", "description": "Read only"})
        assert response.status_code == 200
        assert response.json()["role"]["name"] == "Viewer"

        response = client.put(f"/api/RoleManagement/roles/{user_role}", headers=admin_headers,
                              json={"name": "Manager"})
        assert response.status_code == 400
        assert response.json()["message"] == "Role name 'Manager' is already in use"

    def test_delete_role(self, client, db_session, admin_headers):
        response = client.delete(f"/api/RoleManagement/roles/{role_id(db_session, 'Admin')}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete role 'Admin' as it is assigned to 1 user(s)"

        response = client.delete(f"/api/RoleManagement/roles/{role_id(db_session, 'Manager')}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Role deleted successfully"
        assert db_session.query(Role).filter(Role.name == "Manager").first() is None

    def test_list_users(self, client, admin_headers, regular_user):
        response = client.get("/api/RoleManagement/users", headers=admin_headers)
        users = {u["username"]: u for u in response.json()}
        assert set(users) == {"admin", "viewer"}
        assert [r["name"] for r in users["viewer"]["roles"]] == ["User"]

    def test_assign_and_remove(self, client, db_session, admin_headers, regular_user):
        manager = role_id(db_session, "Manager")
        body = {"userId": regular_user.id, "roleId": manager}

        response = client.post("/api/RoleManagement/assign", headers=admin_headers, json=body)
        assert response.status_code == 200
        assert response.json()["message"] == "Role 'Manager' assigned successfully"
        assert sorted(r["name"] for r in response.json()["user"]["roles"]) == ["Manager", "User"]

        response = client.post("/api/RoleManagement/assign", headers=admin_headers, json=body)
        assert response.status_code == 400
        assert response.json()["message"] == "User already has the 'Manager' role"

        response = client.get(f"/api/RoleManagement/users/{regular_user.id}/roles", headers=admin_headers)
        assert len(response.json()["user"]["roles"]) == 2

        response = client.post("/api/RoleManagement/remove", headers=admin_headers, json=body)
        assert response.status_code == 200
        assert response.json()["message"] == "Role 'Manager' removed successfully"

        response = client.post("/api/RoleManagement/remove", headers=admin_headers, json=body)
        assert response.status_code == 404
        assert response.json()["message"] == "User does not have the 'Manager' role"

    def test_assign_unknown_user(self, client, db_session, admin_headers):
        response = client.post("/api/RoleManagement/assign", headers=admin_headers,
                               json={"userId": 999, "roleId": role_id(db_session, "User")})
        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_role_change_reaches_new_tokens(self, client, db_session, admin_headers, regular_user):
        client.post("/api/RoleManagement/assign", headers=admin_headers,
                    json={"userId": regular_user.id, "roleId": role_id(db_session, "Admin")})
        db_session.refresh(regular_user)
        response = client.get("/api/Auth/test", headers=auth_headers(regular_user))
        assert sorted(response.json()["roles"]) == ["Admin", "User"]


class TestRegistryAPI:
    """Test registry and column metadata administration"""

    def test_register_procedure(self, client, db_session, admin_headers):
        response = client.post("/api/Registry/procedures", headers=admin_headers, json={
            "procedureName": "sp_Grid_Employees",
            "displayName": "Employees",
            "databaseName": "HR",
            "allowedRoles": ["Admin", "User"]
        })
        assert response.status_code == 201
        data = response.json()
        assert data["procedureName"] == "sp_Grid_Employees"
        assert data["allowedRoles"] == ["Admin", "User"]
        assert data["requiresAuth"] is True
        assert data["defaultPageSize"] == 15

        row = db_session.query(StoredProcedureRegistry).first()
        assert row.created_by == "admin"

    def test_register_rejects_bad_name(self, client, admin_headers):
        response = client.post("/api/Registry/procedures", headers=admin_headers, json={
            "procedureName": "drop_everything", "displayName": "Nope"
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid procedure name: drop_everything"

    def test_register_duplicate(self, client, db_session, admin_headers):
        register_procedure(db_session, "sp_Grid_Employees", ["User"])
        response = client.post("/api/Registry/procedures", headers=admin_headers, json={
            "procedureName": "sp_Grid_Employees", "displayName": "Employees"
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Procedure 'sp_Grid_Employees' is already registered"

    def test_update_procedure(self, client, db_session, admin_headers):
        procedure = register_procedure(db_session, "sp_Grid_Employees", ["User"], description="Staff")
        response = client.put(f"/api/Registry/procedures/{procedure.id}", headers=admin_headers,
                              json={"isActive": False, "allowedRoles": ["Admin"]})
        assert response.status_code == 200
        data = response.json()
        assert data["isActive"] is False
        assert data["allowedRoles"] == ["Admin"]
        assert data["description"] == "Staff"

    def test_update_missing_procedure(self, client, admin_headers):
        response = client.put("/api/Registry/procedures/999", headers=admin_headers, json={"isActive": False})
        assert response.status_code == 404

    def test_list_includes_inactive(self, client, db_session, admin_headers):
        register_procedure(db_session, "sp_Grid_A", ["User"])
        register_procedure(db_session, "sp_Grid_B", ["User"], is_active=False)
        response = client.get("/api/Registry/procedures", headers=admin_headers)
        assert [p["procedureName"] for p in response.json()] == ["sp_Grid_A", "sp_Grid_B"]

    def test_delete_procedure(self, client, db_session, admin_headers):
        procedure = register_procedure(db_session, "sp_Grid_A", ["User"])
        response = client.delete(f"/api/Registry/procedures/{procedure.id}", headers=admin_headers)
        assert response.json() == {"message": "Procedure removed from registry"}
        assert db_session.query(StoredProcedureRegistry).count() == 0

    def test_column_metadata_upsert(self, client, db_session, admin_headers):
        add_column_metadata(db_session, "sp_Grid_Aclines", "ibus", cell_editor="text")
        response = client.put("/api/Registry/column-metadata/sp_Grid_Aclines", headers=admin_headers, json=[
            {"columnName": "ibus", "cellEditor": "dropdown", "dropdownType": "dynamic",
             "masterTable": "Buses", "valueField": "ibus", "labelField": "name",
             "filterCondition": '"CaseNumber" = @param_CaseNumber', "dependsOn": ["CaseNumber"]},
            {"columnName": "status", "cellEditor": "dropdown", "dropdownType": "static",
             "staticValues": ["Open", "Closed"]},
        ])
        assert response.status_code == 200
        data = {m["columnName"]: m for m in response.json()}
        assert data["ibus"]["cellEditor"] == "dropdown"
        assert data["ibus"]["dependsOn"] == ["CaseNumber"]
        assert data["status"]["staticValues"] == ["Open", "Closed"]
        assert db_session.query(ColumnMetadata).count() == 2

        response = client.get("/api/Registry/column-metadata/sp_Grid_Aclines", headers=admin_headers)
        assert [m["columnName"] for m in response.json()] == ["ibus", "status"]

    def test_registry_requires_admin(self, client, db_session):
        user = make_user(db_session, "plain", ["User"])
        response = client.get("/api/Registry/procedures", headers=auth_headers(user))
        assert response.status_code == 403
