from charades import db, bcrypt
from flask_login import UserMixin
import random
from datetime import datetime

LOBBY_WAITING = 'waiting'
LOBBY_PLAYING = 'playing'
LOBBY_FINISHED = 'finished'


class Player(UserMixin, db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    nickname = db.Column(db.String(64), unique=True, nullable=False, index=True)
    pin_hash = db.Column(db.String(256), nullable=False)

    def set_pin(self, pin):
        self.pin_hash = bcrypt.generate_password_hash(str(pin)).decode('utf-8')

    def check_pin(self, pin):
        return bcrypt.check_password_hash(self.pin_hash, str(pin))

    def to_dict(self):
        return {
            'id': str(self.id),
            'nickname': self.nickname,
        }


class CharadesTask(db.Model):
    __tablename__ = 'charades_task'
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True, index=True)

    def to_dict(self):
        return {
            'id': str(self.id),
            'content': self.content,
            'category': self.category,
        }


def generate_lobby_code():
    """Generate a 6 digit join code unused by any live lobby."""
    while True:
        code = str(random.randint(100000, 999999))
        taken = Lobby.query.filter(Lobby.code == code, Lobby.status != LOBBY_FINISHED).first()
        if not taken:
            return code


class Lobby(db.Model):
    __tablename__ = 'charades_lobby'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(6), nullable=False, index=True)
    host_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    status = db.Column(db.String(16), default=LOBBY_WAITING, nullable=False)  # waiting, playing, finished
    tasks_per_player = db.Column(db.Integer, default=3, nullable=False)
    round_time_seconds = db.Column(db.Integer, default=60, nullable=False)
    selected_categories = db.Column(db.JSON, default=list)
    current_game_state = db.Column(db.JSON, nullable=True)
    # Mirrors current_game_state['version'] so writes can compare-and-swap on it
    state_version = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    memberships = db.relationship('LobbyPlayer', back_populates='lobby', cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        super(Lobby, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_lobby_code()

    def member_ids(self):
        return [str(m.player_id) for m in self.memberships]

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'host_id': str(self.host_id),
            'status': self.status,
            'tasks_per_player': self.tasks_per_player,
            'round_time_seconds': self.round_time_seconds,
            'selected_categories': list(self.selected_categories or []),
            'current_game_state': self.current_game_state,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class LobbyPlayer(db.Model):
    __tablename__ = 'charades_lobby_player'
    __table_args__ = (db.UniqueConstraint('lobby_id', 'player_id', name='uq_lobby_player'),)
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('charades_lobby.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    lobby = db.relationship('Lobby', back_populates='memberships')
    player = db.relationship('Player')

    def to_dict(self):
        return {
            'id': self.id,
            'lobby_id': self.lobby_id,
            'player_id': str(self.player_id),
            'nickname': self.player.nickname if self.player else None,
            'score': self.score,
            'is_active': self.is_active,
        }
