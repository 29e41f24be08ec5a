# migrations/versions/001_initial_schema.py
"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Tabela artists
    op.create_table('artists',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('ticketmaster_id', sa.String(length=100), nullable=True),
        sa.Column('spotify_id', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('genres', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('stored_songs', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticketmaster_id'),
        sa.UniqueConstraint('spotify_id')
    )

    # Tabela venues
    op.create_table('venues',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('ticketmaster_id', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('city', sa.String(length=200), nullable=True),
        sa.Column('state', sa.String(length=200), nullable=True),
        sa.Column('country', sa.String(length=200), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticketmaster_id')
    )

    # Tabela shows
    op.create_table('shows',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('ticketmaster_id', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=500), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ticket_url', sa.Text(), nullable=True),
        sa.Column('artist_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('popularity', sa.Integer(), server_default=sa.text('0'), nullable=True),
        sa.Column('genre_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['artist_id'], ['artists.id'], ),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticketmaster_id')
    )

    # Tabela setlists
    op.create_table('setlists',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('show_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('artist_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('setlist_fm_id', sa.String(length=100), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['show_id'], ['shows.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['artist_id'], ['artists.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('show_id'),
        sa.UniqueConstraint('setlist_fm_id')
    )

    # Tabela setlist_songs
    op.create_table('setlist_songs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('setlist_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('position', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('vote_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['setlist_id'], ['setlists.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('setlist_id', 'name', name='unique_setlist_song_name'),
        sa.CheckConstraint('vote_count >= 0', name='non_negative_votes')
    )

    # Tabela votes
    op.create_table('votes',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('setlist_song_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=True),
        sa.Column('anonymous_key', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['setlist_song_id'], ['setlist_songs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'setlist_song_id', name='unique_user_song_vote'),
        sa.UniqueConstraint('anonymous_key', 'setlist_song_id', name='unique_anonymous_song_vote')
    )

    # Índices
    op.create_index('idx_artists_name', 'artists', ['name'], unique=False)
    op.create_index('idx_shows_artist', 'shows', ['artist_id'], unique=False)
    op.create_index('idx_shows_venue', 'shows', ['venue_id'], unique=False)
    op.create_index('idx_shows_date', 'shows', ['date'], unique=False)
    op.create_index('idx_setlist_songs_votes', 'setlist_songs', ['setlist_id', 'vote_count'], unique=False)
    op.create_index('idx_votes_anonymous', 'votes', ['anonymous_key'], unique=False)

def downgrade():
    op.drop_table('votes')
    op.drop_table('setlist_songs')
    op.drop_table('setlists')
    op.drop_table('shows')
    op.drop_table('venues')
    op.drop_table('artists')
