"""create player, charades_task, charades_lobby and charades_lobby_player

Revision ID: 4b7e1c2d9a10
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e1c2d9a10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('nickname', sa.String(length=64), nullable=False),
            sa.Column('pin_hash', sa.String(length=256), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_player_nickname', 'player', ['nickname'], unique=True)

    if 'charades_task' not in existing_tables:
        op.create_table(
            'charades_task',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('content', sa.String(length=255), nullable=False),
            sa.Column('category', sa.String(length=64), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_charades_task_category', 'charades_task', ['category'], unique=False)

    if 'charades_lobby' not in existing_tables:
        op.create_table(
            'charades_lobby',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('code', sa.String(length=6), nullable=False),
            sa.Column('host_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('tasks_per_player', sa.Integer(), nullable=False),
            sa.Column('round_time_seconds', sa.Integer(), nullable=False),
            sa.Column('selected_categories', sa.JSON(), nullable=True),
            sa.Column('current_game_state', sa.JSON(), nullable=True),
            sa.Column('state_version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['host_id'], ['player.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_charades_lobby_code', 'charades_lobby', ['code'], unique=False)

    if 'charades_lobby_player' not in existing_tables:
        op.create_table(
            'charades_lobby_player',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lobby_id', sa.Integer(), nullable=False),
            sa.Column('player_id', sa.Integer(), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('joined_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['lobby_id'], ['charades_lobby.id']),
            sa.ForeignKeyConstraint(['player_id'], ['player.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('lobby_id', 'player_id', name='uq_lobby_player'),
        )
        op.create_index('ix_charades_lobby_player_lobby_id', 'charades_lobby_player', ['lobby_id'], unique=False)


def downgrade():
    op.drop_index('ix_charades_lobby_player_lobby_id', table_name='charades_lobby_player')
    op.drop_table('charades_lobby_player')
    op.drop_index('ix_charades_lobby_code', table_name='charades_lobby')
    op.drop_table('charades_lobby')
    op.drop_index('ix_charades_task_category', table_name='charades_task')
    op.drop_table('charades_task')
    op.drop_index('ix_player_nickname', table_name='player')
    op.drop_table('player')
