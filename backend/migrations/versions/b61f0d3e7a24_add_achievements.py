"""add achievements to player_rating and match_result

Revision ID: b61f0d3e7a24
Revises: 9d2e6f5a8c11
Create Date: 2026-10-19 11:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b61f0d3e7a24'
down_revision = '9d2e6f5a8c11'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    for table in ('player_rating', 'match_result'):
        cols = {c['name'] for c in insp.get_columns(table)}
        if 'achievements' not in cols:
            with op.batch_alter_table(table) as batch_op:
                batch_op.add_column(sa.Column('achievements', sa.Text(), nullable=True))


def downgrade():
    with op.batch_alter_table('match_result') as batch_op:
        batch_op.drop_column('achievements')
    with op.batch_alter_table('player_rating') as batch_op:
        batch_op.drop_column('achievements')
