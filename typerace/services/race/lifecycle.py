from typing import Dict, FrozenSet, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from typerace import db
from typerace.errors import (
    GenerationConflict,
    InvalidRequest,
    InvalidTransition,
    NotAuthorized,
    RaceAlreadyStarted,
    RoomNotFound,
)
from typerace.models import (
    FINISHED,
    IN_PROGRESS,
    STARTING,
    WAITING,
    Player,
    Room,
    generate_room_code,
    normalize_code,
    utcnow,
)
from .texts import choose_text, is_usable_text

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    WAITING: frozenset({STARTING, IN_PROGRESS, FINISHED}),
    STARTING: frozenset({IN_PROGRESS, FINISHED}),
    IN_PROGRESS: frozenset({FINISHED}),
    FINISHED: frozenset(),
}

# States a start command may still act on; starting is a pass-through
STARTABLE = (WAITING, STARTING)


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def require_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f'Cannot move room from {current} to {target}')


def get_room(code) -> Room:
    room = Room.query.filter_by(code=normalize_code(code)).first()
    if not room:
        raise RoomNotFound()
    return room


def _require_host(room: Room, player_id) -> None:
    # Without a host anyone may act; once claimed only the host may
    if room.host_id is not None and player_id != room.host_id:
        raise NotAuthorized()


def create_room(text: Optional[str] = None) -> Room:
    """Create a waiting room with a fresh code.

    Collisions are retried up to ROOM_CODE_MAX_ATTEMPTS, whether caught by
    the pre-check or by the unique constraint at commit.
    """
    if text is not None:
        if not is_usable_text(text):
            raise InvalidRequest('Text must be non-empty printable text')
        text = text.strip()
    else:
        text = choose_text()

    length = int(current_app.config.get('ROOM_CODE_LENGTH', 6))
    attempts = int(current_app.config.get('ROOM_CODE_MAX_ATTEMPTS', 5))
    for attempt in range(1, attempts + 1):
        code = generate_room_code(length)
        if Room.query.filter_by(code=code).first():
            current_app.logger.info(f"[room-code-collision] code={code} attempt={attempt}")
            continue
        room = Room(code=code, text=text, status=WAITING)
        db.session.add(room)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info(f"[room-code-collision] code={code} attempt={attempt} at commit")
            continue
        current_app.logger.info(f"[room-create] room={room.id} code={room.code} text_len={len(room.text)}")
        return room
    raise GenerationConflict(f'No unique room code after {attempts} attempts')


def _claim_host(room_id: int, player_id: str) -> bool:
    """Assign the host only if none is set yet. Returns True when this player won."""
    result = db.session.execute(
        db.update(Room)
        .where(Room.id == room_id, Room.host_id.is_(None))
        .values(host_id=player_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _still_waiting(room_id: int) -> bool:
    """Re-read the room status under a row lock inside the join transaction."""
    room = (
        Room.query.filter_by(id=room_id)
        .with_for_update()
        .populate_existing()
        .one()
    )
    return room.status == WAITING


def _find_by_token(room: Room, client_token: Optional[str]) -> Optional[Player]:
    if not client_token:
        return None
    return Player.query.filter_by(room_id=room.id, client_token=client_token).first()


def join_room(code, name, client_token: Optional[str] = None) -> Tuple[Player, bool]:
    """Join a waiting room. Returns ``(player, created)``.

    A join carrying a ``client_token`` already seen in this room returns the
    existing player, so a retried join never enrolls the same client twice.
    """
    name = (name or '').strip() if isinstance(name, str) else ''
    max_len = int(current_app.config.get('MAX_NAME_LENGTH', 64))
    if not name or len(name) > max_len:
        raise InvalidRequest(f'Name must be 1-{max_len} characters')
    if client_token is not None and (not isinstance(client_token, str) or len(client_token) > 64):
        raise InvalidRequest('client_token must be a string of at most 64 characters')

    room = get_room(code)
    existing = _find_by_token(room, client_token)
    if existing:
        current_app.logger.info(f"[room-join-replay] room={room.code} player={existing.id}")
        return existing, False

    if room.status != WAITING:
        raise RaceAlreadyStarted()

    player = Player(name=name, room_id=room.id, client_token=client_token or None)
    db.session.add(player)
    try:
        db.session.flush()
        if not _still_waiting(room.id):
            current_app.logger.info(f"[room-join-rejected] room={room.code} started during join")
            db.session.rollback()
            raise RaceAlreadyStarted()
        is_host = _claim_host(room.id, player.id)
        db.session.commit()
    except IntegrityError:
        # Same token raced us in; hand back the winner
        db.session.rollback()
        existing = _find_by_token(room, client_token)
        if existing is None:
            raise
        return existing, False

    current_app.logger.info(f"[room-join] room={room.code} player={player.id} name={player.name!r}")
    if is_host:
        current_app.logger.info(f"[host-claim] room={room.code} host={player.id}")
    return player, True


def start_race(code, player_id) -> Room:
    """Start the race, or report the existing start on replay.

    A replay from any client after the start is a no-op success; only the
    first transition out of waiting needs the host.
    """
    room = get_room(code)
    if room.status not in STARTABLE:
        current_app.logger.info(f"[race-start-replay] room={room.code} status={room.status}")
        return room

    _require_host(room, player_id)
    require_transition(room.status, IN_PROGRESS)
    result = db.session.execute(
        db.update(Room)
        .where(Room.id == room.id, Room.status.in_(STARTABLE))
        .values(status=IN_PROGRESS, start_time=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    # Re-read so both the winner and a losing concurrent caller report the stored stamp
    db.session.refresh(room)
    if result.rowcount == 1:
        current_app.logger.info(f"[race-start] room={room.code} by={player_id} start_time={room.start_time}")
    else:
        current_app.logger.info(f"[race-start-replay] room={room.code} lost start race")
    return room


def finish_room(room: Room, reason: str) -> bool:
    """Move a room to finished once. Returns True if this call did it."""
    result = db.session.execute(
        db.update(Room)
        .where(Room.id == room.id, Room.status != FINISHED)
        .values(status=FINISHED, finished_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(room)
    if result.rowcount == 1:
        current_app.logger.info(f"[room-finish] room={room.code} reason={reason}")
        return True
    return False


def finish_race(code, player_id) -> Room:
    """Host ends the race explicitly. Idempotent once finished."""
    room = get_room(code)
    _require_host(room, player_id)
    if room.status == FINISHED:
        return room
    require_transition(room.status, FINISHED)
    finish_room(room, reason='host')
    return room


def all_players_finished(room: Room) -> bool:
    total = Player.query.filter_by(room_id=room.id).count()
    if total == 0:
        return False
    done = Player.query.filter(Player.room_id == room.id, Player.finished_at.isnot(None)).count()
    return done == total
