"""
Create schemas, migrations, schema_changes and schema_dependencies tables
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
# revision identifiers, used by Alembic.
revision = '202610190900_create_schema_engine_tables'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'schemas',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('model_id', sa.String(length=100), nullable=False),
        sa.Column('version', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('table_name', sa.String(length=100), nullable=False),
        sa.Column('definition', postgresql.JSONB, nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('is_system', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('metadata', postgresql.JSONB, nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deprecated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('model_id', 'version', name='uq_schemas_model_id_version'),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'deprecated', 'archived')",
            name='ck_schemas_status',
        ),
    )
    op.create_index('ix_schemas_model_id', 'schemas', ['model_id'])
    op.create_index('ix_schemas_table_name', 'schemas', ['table_name'])
    op.create_index('ix_schemas_status', 'schemas', ['status'])

    op.create_table(
        'migrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('migration_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('from_schema_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schemas.id', ondelete='SET NULL'), nullable=True),
        sa.Column('to_schema_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schemas.id', ondelete='SET NULL'), nullable=True),
        sa.Column('from_version', sa.String(length=20), nullable=True),
        sa.Column('to_version', sa.String(length=20), nullable=False),
        sa.Column('migration_type', sa.String(length=20), nullable=False, server_default='alter'),
        sa.Column('forward_statements', postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('reverse_statements', postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('execution_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('auto_activated', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('applied_by', sa.String(length=255), nullable=True),
        sa.Column('rolled_back_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rolled_back_by', sa.String(length=255), nullable=True),
        sa.Column('execution_time_ms', sa.Integer, nullable=True),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('error_stack', sa.Text, nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'rolled_back')",
            name='ck_migrations_status',
        ),
    )
    op.create_index('ix_migrations_from_schema_id', 'migrations', ['from_schema_id'])
    op.create_index('ix_migrations_to_schema_id', 'migrations', ['to_schema_id'])
    op.create_index('ix_migrations_status', 'migrations', ['status'])
    op.create_index('idx_migrations_execution_order', 'migrations', ['execution_order', 'created_at'])

    op.create_table(
        'schema_changes',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('schema_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('change_type', sa.String(length=20), nullable=False),
        sa.Column('change_details', postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('before_snapshot', postgresql.JSONB, nullable=True),
        sa.Column('after_snapshot', postgresql.JSONB, nullable=True),
        sa.Column('changed_by', sa.String(length=255), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('migration_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.CheckConstraint(
            "change_type IN ('created', 'updated', 'activated', 'deprecated', 'archived', 'deleted', 'rolled_back')",
            name='ck_schema_changes_change_type',
        ),
    )
    op.create_index('ix_schema_changes_schema_id', 'schema_changes', ['schema_id'])
    op.create_index('ix_schema_changes_change_type', 'schema_changes', ['change_type'])
    op.create_index('ix_schema_changes_changed_at', 'schema_changes', ['changed_at'])
    op.create_index('idx_schema_changes_schema_changed_at', 'schema_changes', ['schema_id', 'changed_at'])

    op.create_table(
        'schema_dependencies',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('schema_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schemas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('depends_on_schema_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schemas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('dependency_type', sa.String(length=20), nullable=False, server_default='reference'),
        sa.Column('field_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('schema_id', 'depends_on_schema_id', name='uq_schema_dependencies_edge'),
        sa.CheckConstraint(
            "dependency_type IN ('foreign_key', 'reference', 'extends')",
            name='ck_schema_dependencies_type',
        ),
    )
    op.create_index('ix_schema_dependencies_schema_id', 'schema_dependencies', ['schema_id'])
    op.create_index('ix_schema_dependencies_depends_on_schema_id', 'schema_dependencies', ['depends_on_schema_id'])

def downgrade():
    op.drop_table('schema_dependencies')
    op.drop_table('schema_changes')
    op.drop_table('migrations')
    op.drop_table('schemas')
