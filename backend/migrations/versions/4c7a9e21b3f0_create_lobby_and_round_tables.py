"""create lobby, player, game_state and round response tables

Revision ID: 4c7a9e21b3f0
Revises:
Create Date: 2026-10-12 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7a9e21b3f0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'lobby',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=4), nullable=False),
        sa.Column('host_uid', sa.String(length=64), nullable=False),
        sa.Column('competitive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_rounds', sa.Integer(), nullable=False, server_default='8'),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=False),
        sa.Column('started_at', sa.Float(), nullable=True),
        sa.Column('finished_at', sa.Float(), nullable=True),
        sa.Column('rated_at', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_lobby_code', 'lobby', ['code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uid', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('lobby_id', sa.Integer(), nullable=False),
        sa.Column('is_ai', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('joined_at', sa.Float(), nullable=False),
        sa.Column('last_seen', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['lobby_id'], ['lobby.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lobby_id', 'uid', name='uq_player_lobby_uid'),
    )
    op.create_index('ix_player_uid', 'player', ['uid'])

    op.create_table(
        'game_state',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lobby_id', sa.Integer(), nullable=False),
        sa.Column('phase', sa.String(length=32), nullable=False, server_default='waiting'),
        sa.Column('round_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('scored_round', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('time_left', sa.Integer(), nullable=True),
        sa.Column('phase_start_time', sa.Float(), nullable=True),
        sa.Column('winner', sa.String(length=64), nullable=True),
        sa.Column('round_results', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['lobby_id'], ['lobby.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lobby_id'),
    )

    op.create_table(
        'submission',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lobby_id', sa.Integer(), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('player_uid', sa.String(length=64), nullable=False),
        sa.Column('card_id', sa.String(length=128), nullable=False),
        sa.Column('card_name', sa.String(length=256), nullable=True),
        sa.Column('submitted_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['lobby_id'], ['lobby.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lobby_id', 'round_number', 'player_uid', name='uq_submission_round_player'),
    )
    op.create_index('ix_submission_lobby_id', 'submission', ['lobby_id'])

    op.create_table(
        'vote',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lobby_id', sa.Integer(), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('voter_uid', sa.String(length=64), nullable=False),
        sa.Column('target_uid', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['lobby_id'], ['lobby.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lobby_id', 'round_number', 'voter_uid', name='uq_vote_round_voter'),
    )
    op.create_index('ix_vote_lobby_id', 'vote', ['lobby_id'])

    op.create_table(
        'abstention',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lobby_id', sa.Integer(), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('player_uid', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['lobby_id'], ['lobby.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lobby_id', 'round_number', 'player_uid', name='uq_abstention_round_player'),
    )
    op.create_index('ix_abstention_lobby_id', 'abstention', ['lobby_id'])


def downgrade():
    op.drop_index('ix_abstention_lobby_id', table_name='abstention')
    op.drop_table('abstention')
    op.drop_index('ix_vote_lobby_id', table_name='vote')
    op.drop_table('vote')
    op.drop_index('ix_submission_lobby_id', table_name='submission')
    op.drop_table('submission')
    op.drop_table('game_state')
    op.drop_index('ix_player_uid', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_lobby_code', table_name='lobby')
    op.drop_table('lobby')
