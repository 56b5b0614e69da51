"""create room and player tables

Revision ID: 3b7c1d2e9f10
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3b7c1d2e9f10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'room' not in existing_tables:
        op.create_table(
            'room',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('code', sa.String(length=16), nullable=False),
            sa.Column('text', sa.Text(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
            sa.Column('host_id', sa.String(length=32), nullable=True),
            sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_room_code', 'room', ['code'], unique=True)

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.String(length=32), nullable=False),
            sa.Column('room_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('progress', sa.Integer(), nullable=False),
            sa.Column('wpm', sa.Integer(), nullable=False),
            sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('client_token', sa.String(length=64), nullable=True),
            sa.ForeignKeyConstraint(['room_id'], ['room.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('room_id', 'client_token', name='uq_player_room_client_token'),
        )
        op.create_index('ix_player_room_id', 'player', ['room_id'], unique=False)

    # room.host_id -> player.id closes the cycle, so it is added last
    fks = {fk.get('name') for fk in insp.get_foreign_keys('room')} if 'room' in existing_tables else set()
    if 'fk_room_host_id' not in fks:
        with op.batch_alter_table('room') as batch_op:
            batch_op.create_foreign_key('fk_room_host_id', 'player', ['host_id'], ['id'])


def downgrade():
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_constraint('fk_room_host_id', type_='foreignkey')
    op.drop_index('ix_player_room_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
