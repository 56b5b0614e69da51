from typerace import db
from datetime import datetime, timezone
from typing import Optional
import random
import string
import uuid

# Room lifecycle vocabulary
WAITING = 'waiting'
STARTING = 'starting'
IN_PROGRESS = 'in-progress'
FINISHED = 'finished'
ROOM_STATUSES = (WAITING, STARTING, IN_PROGRESS, FINISHED)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the store (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def normalize_code(code) -> str:
    return str(code or '').strip().upper()


def new_player_id() -> str:
    return uuid.uuid4().hex


def generate_room_code(length=6) -> str:
    """Generate a short room code. Uniqueness is checked by the caller."""
    return ''.join(random.choices(CODE_ALPHABET, k=length))


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'client_token', name='uq_player_room_client_token'),
    )
    id = db.Column(db.String(32), primary_key=True, default=new_player_id)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    progress = db.Column(db.Integer, default=0, nullable=False)
    wpm = db.Column(db.Integer, default=0, nullable=False)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)
    joined_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    client_token = db.Column(db.String(64), nullable=True)
    room = db.relationship('Room', back_populates='players', foreign_keys=[room_id])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'progress': self.progress,
            'wpm': self.wpm,
            'finished_at': isoformat(self.finished_at),
        }


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), default=WAITING, nullable=False)  # waiting, starting, in-progress, finished
    start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    host_id = db.Column(db.String(32), db.ForeignKey('player.id', name='fk_room_host_id', use_alter=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    players = db.relationship(
        'Player',
        back_populates='room',
        foreign_keys='Player.room_id',
        order_by='Player.joined_at',
    )

    def to_dict(self, players=None):
        """Serialize the room. ``players`` overrides the default join order (e.g. a ranking)."""
        ranked = list(players) if players is not None else list(self.players)
        players_serialized = []
        for rank, p in enumerate(ranked, start=1):
            pd = p.to_dict()
            pd['is_host'] = p.id == self.host_id
            pd['rank'] = rank
            players_serialized.append(pd)
        return {
            'id': self.id,
            'code': self.code,
            'text': self.text,
            'status': self.status,
            'start_time': isoformat(self.start_time),
            'host_id': self.host_id,
            'finished_at': isoformat(self.finished_at),
            'players': players_serialized,
        }
