# Test Configuration
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Test settings
TEST_SECRET_KEY = "test-secret-key-for-testing-only"
os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)
os.environ.setdefault("DEBUG", "false")

from gridportal.database import Base, get_db
from gridportal.models import User, Role, StoredProcedureRegistry, ColumnMetadata
from gridportal.core.auth import create_access_token
from gridportal.core.rbac import initialize_rbac
from gridportal.services.codegen import SchemaIntrospector, ColumnInfo
from gridportal.services.grid import get_grid_executor

TEST_PASSWORD = "secret123"


class FakeIntrospector(SchemaIntrospector):
    """Introspector over an in-memory table description."""

    def __init__(self, tables: Dict[str, List[ColumnInfo]], primary_keys: Dict[str, List[str]],
                 schema: str = "public"):
        super().__init__(connection=None, schema=schema)
        self.tables = tables
        self.primary_keys = primary_keys

    def _fetch_columns(self, table: str) -> List[ColumnInfo]:
        return list(self.tables.get(table, []))

    def _fetch_primary_keys(self, table: str) -> List[str]:
        return list(self.primary_keys.get(table, []))


def employee_columns() -> List[ColumnInfo]:
    return [
        ColumnInfo("id", "integer", is_nullable=False,
                   column_default="nextval('employees_id_seq'::regclass)", ordinal_position=1),
        ColumnInfo("name", "character varying", is_nullable=False, ordinal_position=2),
        ColumnInfo("email", "text", ordinal_position=3),
        ColumnInfo("salary", "numeric", ordinal_position=4),
        ColumnInfo("hired_on", "date", ordinal_position=5),
        ColumnInfo("active", "boolean", is_nullable=False, column_default="true", ordinal_position=6),
        ColumnInfo("created_at", "timestamp with time zone", column_default="now()", ordinal_position=7),
    ]


def bus_acline_columns() -> List[ColumnInfo]:
    return [
        ColumnInfo("CaseNumber", "integer", is_nullable=False, ordinal_position=1),
        ColumnInfo("ibus", "integer", is_nullable=False, ordinal_position=2),
        ColumnInfo("jbus", "integer", is_nullable=False, ordinal_position=3),
        ColumnInfo("ckt", "character varying", is_nullable=False, ordinal_position=4),
        ColumnInfo("rpu", "double precision", ordinal_position=5),
        ColumnInfo("status", "USER-DEFINED", udt_name="line_status", ordinal_position=6),
    ]


@pytest.fixture
def introspector():
    return FakeIntrospector(
        tables={"employees": employee_columns(), "aclines": bus_acline_columns()},
        primary_keys={"employees": ["id"], "aclines": ["CaseNumber", "ibus", "jbus", "ckt"]},
    )


class FakeExecutor:
    """Stands in for GridProcedureExecutor: records calls and replays canned results."""

    def __init__(self):
        self.results: Dict[str, Any] = {}
        self.errors: Dict[str, Exception] = {}
        self.rows: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.queries: List[tuple] = []

    def call_scalar(self, database_name: Optional[str], procedure_name: str, params: Dict[str, Any]) -> Any:
        self.calls.append((database_name, procedure_name, dict(params)))
        if procedure_name in self.errors:
            raise self.errors[procedure_name]
        return self.results.get(procedure_name)

    def query_rows(self, database_name: Optional[str], sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.queries.append((database_name, sql, dict(params)))
        return list(self.rows)


class FakeConnection:
    """Connection double for the scaffolder: answers information_schema queries, records DDL."""

    def __init__(self, columns: List[ColumnInfo], primary_keys: List[str], failing: tuple = ()):
        self.columns = columns
        self.primary_keys = primary_keys
        self.failing = failing
        self.ddl: List[str] = []
        self.commits = 0

    def execute(self, statement, params=None):
        sql = str(statement)
        if "PRIMARY KEY" in sql:
            return [(name,) for name in self.primary_keys]
        return [
            (c.name, c.data_type, "YES" if c.is_nullable else "NO", c.column_default,
             c.ordinal_position, c.udt_name, "YES" if c.is_identity else "NO")
            for c in self.columns
        ]

    @contextmanager
    def begin_nested(self):
        yield

    def exec_driver_sql(self, sql, parameters=None, execution_options=None):
        from sqlalchemy.exc import ProgrammingError
        for marker in self.failing:
            if marker in sql:
                raise ProgrammingError(sql[:40], {}, Exception(f"syntax error near {marker}"))
        self.ddl.append(sql)

    def commit(self):
        self.commits += 1


class FakeRouter:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self.requested: List[Optional[str]] = []

    @contextmanager
    def get_connection(self, database_name: Optional[str] = None):
        self.requested.append(database_name)
        yield self.connection


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    initialize_rbac(session)
    yield session
    session.close()


_password_hash = None


def make_user(db, username: str, roles: List[str], is_active: bool = True) -> User:
    global _password_hash
    if _password_hash is None:
        _password_hash = User.hash_password(TEST_PASSWORD)

    user = User(
        username=username,
        email=f"{username}@example.com",
        hashed_password=_password_hash,
        is_active=is_active
    )
    user.roles = db.query(Role).filter(Role.name.in_(roles)).all()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> Dict[str, str]:
    token, _ = create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


def register_procedure(db, procedure_name: str, roles: List[str], **kwargs) -> StoredProcedureRegistry:
    procedure = StoredProcedureRegistry(
        procedure_name=procedure_name,
        display_name=kwargs.pop("display_name", procedure_name.replace("sp_Grid_", "")),
        is_active=kwargs.pop("is_active", True),
        requires_auth=kwargs.pop("requires_auth", True),
        **kwargs
    )
    procedure.set_allowed_roles(roles)
    db.add(procedure)
    db.commit()
    db.refresh(procedure)
    return procedure


def add_column_metadata(db, procedure_name: str, column_name: str, **kwargs) -> ColumnMetadata:
    metadata = ColumnMetadata(procedure_name=procedure_name, column_name=column_name, is_active=True, **kwargs)
    db.add(metadata)
    db.commit()
    db.refresh(metadata)
    return metadata


@pytest.fixture
def admin_user(db_session):
    return make_user(db_session, "admin", ["Admin"])


@pytest.fixture
def manager_user(db_session):
    return make_user(db_session, "manager", ["Manager"])


@pytest.fixture
def regular_user(db_session):
    return make_user(db_session, "viewer", ["User"])


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def client(db_session, fake_executor):
    """Test client with the central database and grid executor replaced."""
    from fastapi.testclient import TestClient
    from gridportal.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_grid_executor] = lambda: fake_executor
    yield TestClient(app)
    app.dependency_overrides.clear()
