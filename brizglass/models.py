from brizglass import db
from flask_login import UserMixin
from datetime import datetime, timezone
import random
import secrets

# Game phases, in the order a game moves through them
LOBBY = 'lobby'
VOTING_AUTHOR = 'voting-author'
RESULTS_AUTHOR = 'results-author'
VOTING_TRUTH = 'voting-truth'
RESULTS_TRUTH = 'results-truth'
FINISHED = 'finished'
STATUSES = (LOBBY, VOTING_AUTHOR, RESULTS_AUTHOR, VOTING_TRUTH, RESULTS_TRUTH, FINISHED)

AUTHOR = 'author'
TRUTH = 'truth'
VOTE_KINDS = (AUTHOR, TRUTH)

# No 0/O or 1/I, codes get read aloud across a room
GAME_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
GAME_CODE_LENGTH = 6


def _utcnow():
    return datetime.now(timezone.utc)


def generate_token():
    """32 character url-safe secret for admin capabilities and player sessions."""
    return secrets.token_urlsafe(24)


def generate_game_code(length=GAME_CODE_LENGTH):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(GAME_CODE_ALPHABET, k=length))
        if not Game.query.filter_by(game_code=code).first():
            return code


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(GAME_CODE_LENGTH), unique=True, index=True, nullable=False)
    status = db.Column(db.String(32), nullable=False, default=LOBBY)
    # Author phase pointer; 0 until started, then 1..N
    current_round = db.Column(db.Integer, nullable=False, default=0)
    # Truth phase pointer; 0 until the truth phase, then 1..N
    truth_round = db.Column(db.Integer, nullable=False, default=0)
    current_player_id = db.Column(
        db.Integer, db.ForeignKey('player.id', name='fk_game_current_player_id', use_alter=True), nullable=True
    )
    aggregate_author_results = db.Column(db.Boolean, nullable=False, default=True)
    admin_token_hash = db.Column(db.String(128), nullable=False)
    # Bumped by every compare-and-set on this row
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    players = db.relationship(
        'Player', back_populates='game', foreign_keys='Player.game_id', order_by='Player.id'
    )
    seats = db.relationship('Seat', back_populates='game', order_by='Seat.position')

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code()

    @property
    def player_order(self):
        """Player ids in on-stage order, frozen when the game starts."""
        return [seat.player_id for seat in self.seats]

    @property
    def current_player(self):
        if self.current_player_id:
            return db.session.get(Player, self.current_player_id)
        return None


class Seat(db.Model):
    """One position in a game's fixed on-stage order."""
    __tablename__ = 'seat'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'position', name='uq_seat_position'),
        db.UniqueConstraint('game_id', 'player_id', name='uq_seat_player'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    game = db.relationship('Game', back_populates='seats')


class Player(UserMixin, db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('game_id', 'nickname', name='uq_player_nickname'),)
    id = db.Column(db.Integer, primary_key=True)
    nickname = db.Column(db.String(20), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    session_token = db.Column(db.String(64), unique=True, index=True, nullable=False, default=generate_token)
    score = db.Column(db.Integer, nullable=False, default=0)
    has_submitted_statements = db.Column(db.Boolean, default=False, nullable=False)
    has_been_guessed = db.Column(db.Boolean, default=False, nullable=False)
    avatar_url = db.Column(db.String(512), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    game = db.relationship('Game', back_populates='players', foreign_keys=[game_id])
    statements = db.relationship('Statement', back_populates='player', order_by='Statement.order')

    def to_dict(self):
        return {
            'id': self.id,
            'nickname': self.nickname,
            'score': self.score,
            'has_submitted_statements': self.has_submitted_statements,
            'avatar_url': self.avatar_url,
        }


class Statement(db.Model):
    __tablename__ = 'statement'
    __table_args__ = (db.UniqueConstraint('player_id', 'order', name='uq_statement_order'),)
    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    is_true = db.Column(db.Boolean, nullable=False, default=False)
    order = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    player = db.relationship('Player', back_populates='statements')

    def to_dict(self, reveal=False):
        data = {'id': self.id, 'text': self.text, 'order': self.order}
        if reveal:
            data['is_true'] = self.is_true
        return data


class Vote(db.Model):
    """A cast vote. Concrete rows are AuthorVote or TruthVote, never both targets."""
    __tablename__ = 'vote'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'round', 'voter_id', 'kind', name='uq_vote_once_per_round'),
        db.CheckConstraint(
            "(kind = 'author' AND voted_player_id IS NOT NULL AND voted_statement_id IS NULL)"
            " OR (kind = 'truth' AND voted_statement_id IS NOT NULL AND voted_player_id IS NULL)",
            name='ck_vote_target_matches_kind',
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    round = db.Column(db.Integer, nullable=False)
    voter_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    voter = db.relationship('Player', foreign_keys=[voter_id])

    __mapper_args__ = {'polymorphic_on': kind}


class AuthorVote(Vote):
    voted_player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=True)
    voted_player = db.relationship('Player', foreign_keys=[voted_player_id])

    __mapper_args__ = {'polymorphic_identity': AUTHOR}

    @property
    def target_id(self):
        return self.voted_player_id


class TruthVote(Vote):
    voted_statement_id = db.Column(db.Integer, db.ForeignKey('statement.id'), nullable=True)
    voted_statement = db.relationship('Statement', foreign_keys=[voted_statement_id])

    __mapper_args__ = {'polymorphic_identity': TRUTH}

    @property
    def target_id(self):
        return self.voted_statement_id
