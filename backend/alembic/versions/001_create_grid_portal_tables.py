"""Create users, roles, grid registry, column metadata, column state and audit tables

Revision ID: 001_create_grid_portal_tables
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_create_grid_portal_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create the central grid portal tables and seed the default roles."""

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index('ix_roles_id', 'roles', ['id'])

    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'role_id')
    )

    # Registry tables keep PascalCase names; generated procedures query them directly
    op.create_table(
        'StoredProcedureRegistry',
        sa.Column('Id', sa.Integer(), nullable=False),
        sa.Column('ProcedureName', sa.String(length=200), nullable=False),
        sa.Column('DisplayName', sa.String(length=100), nullable=False),
        sa.Column('Description', sa.String(length=500), nullable=True),
        sa.Column('ClientId', sa.Integer(), nullable=True),
        sa.Column('Category', sa.String(length=50), nullable=True),
        sa.Column('DatabaseName', sa.String(length=100), nullable=True),
        sa.Column('IsActive', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('RequiresAuth', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('AllowedRoles', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('CacheDurationSeconds', sa.Integer(), nullable=True),
        sa.Column('DefaultPageSize', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('MaxPageSize', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('CreatedAt', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('UpdatedAt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('CreatedBy', sa.String(length=100), nullable=True),
        sa.Column('UpdatedBy', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('Id')
    )
    op.create_index('ix_StoredProcedureRegistry_Id', 'StoredProcedureRegistry', ['Id'])
    op.create_index('ix_StoredProcedureRegistry_ProcedureName', 'StoredProcedureRegistry', ['ProcedureName'], unique=True)

    op.create_table(
        'ColumnMetadata',
        sa.Column('Id', sa.Integer(), nullable=False),
        sa.Column('ProcedureName', sa.String(length=200), nullable=False),
        sa.Column('ColumnName', sa.String(length=200), nullable=False),
        sa.Column('CellEditor', sa.String(length=50), nullable=True),
        sa.Column('DropdownType', sa.String(length=20), nullable=True),
        sa.Column('StaticValuesJson', sa.Text(), nullable=True),
        sa.Column('MasterTable', sa.String(length=200), nullable=True),
        sa.Column('ValueField', sa.String(length=200), nullable=True),
        sa.Column('LabelField', sa.String(length=200), nullable=True),
        sa.Column('FilterCondition', sa.Text(), nullable=True),
        sa.Column('DependsOnJson', sa.Text(), nullable=True),
        sa.Column('LinkConfig', postgresql.JSONB(), nullable=True),
        sa.Column('IsActive', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('CreatedAt', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('UpdatedAt', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('Id'),
        sa.UniqueConstraint('ProcedureName', 'ColumnName', name='uq_columnmetadata_procedure_column')
    )
    op.create_index('ix_ColumnMetadata_Id', 'ColumnMetadata', ['Id'])
    op.create_index('ix_ColumnMetadata_ProcedureName', 'ColumnMetadata', ['ProcedureName'])

    op.create_table(
        'grid_column_states',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('procedure_name', sa.String(length=200), nullable=False),
        sa.Column('column_state', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'procedure_name', name='uq_grid_column_state_user_procedure')
    )
    op.create_index('ix_grid_column_states_id', 'grid_column_states', ['id'])
    op.create_index('ix_grid_column_states_user_id', 'grid_column_states', ['user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=100), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=100), nullable=True),
        sa.Column('resource_id', sa.String(length=200), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True, server_default='success'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_resource_type', 'audit_logs', ['resource_type'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    op.execute("""
        INSERT INTO roles (name, description, is_active) VALUES
            ('Admin', 'Full system administrator', true),
            ('Manager', 'Can view and edit grid data', true),
            ('User', 'Standard grid user', true)
    """)


def downgrade():
    """Drop the grid portal tables."""
    op.drop_table('audit_logs')
    op.drop_table('grid_column_states')
    op.drop_table('ColumnMetadata')
    op.drop_table('StoredProcedureRegistry')
    op.drop_table('user_roles')
    op.drop_table('roles')
    op.drop_table('users')
