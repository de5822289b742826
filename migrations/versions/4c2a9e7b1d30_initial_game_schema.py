"""initial game schema: game, player, seat, statement, vote

Revision ID: 4c2a9e7b1d30
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7b1d30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_code', sa.String(length=6), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('truth_round', sa.Integer(), nullable=False),
        sa.Column('current_player_id', sa.Integer(), nullable=True),
        sa.Column('aggregate_author_results', sa.Boolean(), nullable=False),
        sa.Column('admin_token_hash', sa.String(length=128), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_game_game_code', 'game', ['game_code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('nickname', sa.String(length=20), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('session_token', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('has_submitted_statements', sa.Boolean(), nullable=False),
        sa.Column('has_been_guessed', sa.Boolean(), nullable=False),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('game_id', 'nickname', name='uq_player_nickname'),
    )
    op.create_index('ix_player_game_id', 'player', ['game_id'])
    op.create_index('ix_player_session_token', 'player', ['session_token'], unique=True)
    op.create_foreign_key('fk_game_current_player_id', 'game', 'player', ['current_player_id'], ['id'])

    op.create_table(
        'seat',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.UniqueConstraint('game_id', 'position', name='uq_seat_position'),
        sa.UniqueConstraint('game_id', 'player_id', name='uq_seat_player'),
    )

    op.create_table(
        'statement',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('is_true', sa.Boolean(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.UniqueConstraint('player_id', 'order', name='uq_statement_order'),
    )
    op.create_index('ix_statement_player_id', 'statement', ['player_id'])

    op.create_table(
        'vote',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('voter_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('voted_player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=True),
        sa.Column('voted_statement_id', sa.Integer(), sa.ForeignKey('statement.id'), nullable=True),
        sa.UniqueConstraint('game_id', 'round', 'voter_id', 'kind', name='uq_vote_once_per_round'),
        sa.CheckConstraint(
            "(kind = 'author' AND voted_player_id IS NOT NULL AND voted_statement_id IS NULL)"
            " OR (kind = 'truth' AND voted_statement_id IS NOT NULL AND voted_player_id IS NULL)",
            name='ck_vote_target_matches_kind',
        ),
    )
    op.create_index('ix_vote_game_id', 'vote', ['game_id'])
    op.create_index('ix_vote_voter_id', 'vote', ['voter_id'])


def downgrade():
    op.drop_table('vote')
    op.drop_table('statement')
    op.drop_table('seat')
    op.drop_constraint('fk_game_current_player_id', 'game', type_='foreignkey')
    op.drop_table('player')
    op.drop_table('game')
