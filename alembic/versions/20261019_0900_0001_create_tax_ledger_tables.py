"""Create jurisdiction, rate timeline, mutation ledger, import and order tables

Revision ID: 0001_create_tax_ledger_tables
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_create_tax_ledger_tables'
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

SQLITE_OVERLAP_TRIGGER = """
CREATE TRIGGER trg_tax_rates_no_overlap_{name}
BEFORE {event} ON tax_rates
FOR EACH ROW
WHEN EXISTS (
    SELECT 1 FROM tax_rates r
    WHERE r.jurisdiction_id = NEW.jurisdiction_id
      AND r.id IS NOT NEW.id
      AND r.valid_from < COALESCE(NEW.valid_to, '9999-12-31')
      AND COALESCE(r.valid_to, '9999-12-31') > NEW.valid_from
)
BEGIN
    SELECT RAISE(ABORT, 'no_overlapping_rates');
END
"""


def upgrade():
    dialect = op.get_bind().dialect.name

    op.create_table(
        'jurisdictions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('jurisdiction_type', sa.String(20), nullable=False),
        sa.Column('geometry', JSON_TYPE, nullable=False),
        sa.Column('min_lon', sa.Float(), nullable=False),
        sa.Column('min_lat', sa.Float(), nullable=False),
        sa.Column('max_lon', sa.Float(), nullable=False),
        sa.Column('max_lat', sa.Float(), nullable=False),
        sa.Column('geometry_simplified_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('name', 'jurisdiction_type', name='uq_jurisdiction_name_type'),
        sa.CheckConstraint(
            "jurisdiction_type IN ('state', 'county', 'city', 'special')",
            name='ck_jurisdiction_type',
        ),
    )
    op.create_index('ix_jurisdictions_id', 'jurisdictions', ['id'])
    op.create_index('ix_jurisdictions_jurisdiction_type', 'jurisdictions', ['jurisdiction_type'])
    op.create_index(
        'idx_jurisdiction_bbox', 'jurisdictions', ['min_lon', 'max_lon', 'min_lat', 'max_lat']
    )

    op.create_table(
        'tax_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'jurisdiction_id',
            sa.Integer(),
            sa.ForeignKey('jurisdictions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('rate', sa.Numeric(10, 6), nullable=False),
        sa.Column('valid_from', sa.Date(), nullable=False),
        sa.Column('valid_to', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'jurisdiction_id', 'valid_from', name='uq_tax_rate_jurisdiction_valid_from'
        ),
        sa.CheckConstraint('rate >= 0 AND rate < 1', name='ck_tax_rate_fraction'),
        sa.CheckConstraint(
            'valid_to IS NULL OR valid_to > valid_from', name='ck_tax_rate_interval_order'
        ),
    )
    op.create_index('ix_tax_rates_id', 'tax_rates', ['id'])
    op.create_index('ix_tax_rates_jurisdiction_id', 'tax_rates', ['jurisdiction_id'])
    op.create_index('idx_tax_rate_validity', 'tax_rates', ['valid_from', 'valid_to'])
    op.create_index(
        'uq_tax_rate_open_head',
        'tax_rates',
        ['jurisdiction_id'],
        unique=True,
        postgresql_where=sa.text('valid_to IS NULL'),
        sqlite_where=sa.text('valid_to IS NULL'),
    )

    if dialect == 'postgresql':
        op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
        op.execute(
            "ALTER TABLE tax_rates ADD CONSTRAINT no_overlapping_rates "
            "EXCLUDE USING gist (jurisdiction_id WITH =, "
            "daterange(valid_from, valid_to, '[)') WITH &&)"
        )
    elif dialect == 'sqlite':
        op.execute(SQLITE_OVERLAP_TRIGGER.format(name='insert', event='INSERT'))
        op.execute(SQLITE_OVERLAP_TRIGGER.format(
            name='update', event='UPDATE OF jurisdiction_id, valid_from, valid_to'
        ))

    op.create_table(
        'tax_rate_mutations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'jurisdiction_id',
            sa.Integer(),
            sa.ForeignKey('jurisdictions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('action', sa.String(10), nullable=False),
        sa.Column('rate_id', sa.Integer(), nullable=True),
        sa.Column('previous_rate_id', sa.Integer(), nullable=True),
        sa.Column('old_rate', sa.Numeric(10, 6), nullable=True),
        sa.Column('new_rate', sa.Numeric(10, 6), nullable=True),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column(
            'reverts_mutation_id',
            sa.Integer(),
            sa.ForeignKey('tax_rate_mutations.id'),
            nullable=True,
            unique=True,
        ),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "action IN ('set', 'revert')", name='ck_tax_rate_mutation_action'
        ),
        sa.CheckConstraint(
            "(action = 'revert') = (reverts_mutation_id IS NOT NULL)",
            name='ck_tax_rate_mutation_revert_ref',
        ),
    )
    op.create_index('ix_tax_rate_mutations_id', 'tax_rate_mutations', ['id'])
    op.create_index(
        'ix_tax_rate_mutations_jurisdiction_id', 'tax_rate_mutations', ['jurisdiction_id']
    )
    op.create_index(
        'idx_tax_rate_mutation_jurisdiction_id', 'tax_rate_mutations', ['jurisdiction_id', 'id']
    )

    op.create_table(
        'import_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('file_hash', sa.String(64), nullable=False),
        sa.Column('rows_imported', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rows_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('file_size_bytes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_import_logs_file_hash', 'import_logs', ['file_hash'], unique=True)

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('lat', sa.Numeric(9, 6), nullable=False),
        sa.Column('lon', sa.Numeric(10, 6), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('composite_tax_rate', sa.Numeric(10, 6), nullable=False),
        sa.Column('tax_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('breakdown', JSON_TYPE, nullable=False),
        sa.Column('jurisdictions_applied', JSON_TYPE, nullable=False),
        sa.Column('jurisdiction_names', sa.Text(), nullable=False, server_default=''),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column(
            'import_id',
            sa.String(36),
            sa.ForeignKey('import_logs.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_orders_timestamp', 'orders', ['timestamp'])
    op.create_index('ix_orders_import_id', 'orders', ['import_id'])
    op.create_index('idx_orders_timestamp_id', 'orders', ['timestamp', 'id'])


def downgrade():
    op.drop_table('orders')
    op.drop_table('import_logs')
    op.drop_table('tax_rate_mutations')
    # Dropping the table drops the exclusion constraint and SQLite triggers with it
    op.drop_table('tax_rates')
    op.drop_table('jurisdictions')
