"""add player_rating and match_result

Revision ID: 9d2e6f5a8c11
Revises: 4c7a9e21b3f0
Create Date: 2026-10-14 16:45:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9d2e6f5a8c11'
down_revision = '4c7a9e21b3f0'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'player_rating' not in existing_tables:
        op.create_table(
            'player_rating',
            sa.Column('uid', sa.String(length=64), nullable=False),
            sa.Column('skill_rating', sa.Integer(), nullable=False, server_default='1200'),
            sa.Column('highest_rating', sa.Integer(), nullable=False, server_default='1200'),
            sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('longest_win_streak', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('average_position', sa.Float(), nullable=False, server_default='0'),
            sa.Column('last_played', sa.Float(), nullable=True),
            sa.PrimaryKeyConstraint('uid'),
        )

    if 'match_result' not in existing_tables:
        op.create_table(
            'match_result',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lobby_code', sa.String(length=4), nullable=False),
            sa.Column('started_at', sa.Float(), nullable=False),
            sa.Column('player_uid', sa.String(length=64), nullable=False),
            sa.Column('position', sa.Integer(), nullable=False),
            sa.Column('total_players', sa.Integer(), nullable=False),
            sa.Column('duration', sa.Float(), nullable=False, server_default='0'),
            sa.Column('rating_before', sa.Integer(), nullable=False),
            sa.Column('rating_after', sa.Integer(), nullable=False),
            sa.Column('rating_change', sa.Integer(), nullable=False),
            sa.Column('completed_at', sa.Float(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('lobby_code', 'started_at', 'player_uid', name='uq_match_result_player'),
        )
        op.create_index('ix_match_result_lobby_code', 'match_result', ['lobby_code'])
        op.create_index('ix_match_result_player_uid', 'match_result', ['player_uid'])


def downgrade():
    op.drop_index('ix_match_result_player_uid', table_name='match_result')
    op.drop_index('ix_match_result_lobby_code', table_name='match_result')
    op.drop_table('match_result')
    op.drop_table('player_rating')
