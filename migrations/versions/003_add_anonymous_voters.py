# migrations/versions/003_add_anonymous_voters.py
"""add anonymous_voters

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None

def upgrade():
    # One row per anonymous key; the vote cap is claimed against vote_total
    op.create_table('anonymous_voters',
        sa.Column('anonymous_key', sa.String(length=100), nullable=False),
        sa.Column('vote_total', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('anonymous_key'),
        sa.CheckConstraint('vote_total >= 0', name='non_negative_anonymous_votes')
    )

    # Existing anonymous votes count against the cap
    op.execute(
        "INSERT INTO anonymous_voters (anonymous_key, vote_total) "
        "SELECT anonymous_key, count(*) FROM votes "
        "WHERE anonymous_key IS NOT NULL GROUP BY anonymous_key"
    )

def downgrade():
    op.drop_table('anonymous_voters')
