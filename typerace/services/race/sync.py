"""Snapshot pull and progress push.

The two exchanges share no transaction. Pulls rank players per request;
pushes are last-write-wins on the pushing player's own row, so pushes from
different players never conflict.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import List, Optional, Tuple

from flask import current_app

from typerace import db
from typerace.errors import InvalidRequest, PlayerNotFound, RaceNotInProgress
from typerace.models import IN_PROGRESS, Player, Room, isoformat, utcnow
from .lifecycle import all_players_finished, finish_room, get_room
from .progress import measure_since


@dataclass(frozen=True)
class PushResult:
    accepted: bool
    progress: int
    wpm: int
    finished_at: Optional[datetime] = None

    def to_dict(self):
        return {
            'ok': True,
            'accepted': self.accepted,
            'progress': self.progress,
            'wpm': self.wpm,
            'finished_at': isoformat(self.finished_at),
        }


def ranked_players(room: Room) -> List[Player]:
    return (
        Player.query.filter_by(room_id=room.id)
        .order_by(Player.wpm.desc(), Player.progress.desc(), Player.joined_at.asc())
        .all()
    )


def room_snapshot(code) -> Tuple[Room, List[Player]]:
    room = get_room(code)
    return room, ranked_players(room)


def _coerce_number(value, field: str) -> float:
    # bool is a Real too, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise InvalidRequest(f'{field} must be a number')
    return value


def _ignored(player: Player, reason: str) -> PushResult:
    current_app.logger.info(f"[push-ignored] player={player.id} reason={reason}")
    return PushResult(False, player.progress, player.wpm, player.finished_at)


def push_progress(code, player_id, progress=None, wpm=None, typed: Optional[str] = None) -> PushResult:
    """Apply one player's progress.

    With ``typed`` the server measures the submission itself and silently
    drops anything that is not a clean prefix of the room text. Otherwise
    the client's ``progress``/``wpm`` are stored as sent (clamped).
    """
    room = get_room(code)
    player = db.session.get(Player, player_id) if isinstance(player_id, str) and player_id else None
    if player is None or player.room_id != room.id:
        raise PlayerNotFound()

    if player.finished_at is not None:
        return _ignored(player, 'already finished')
    if room.status != IN_PROGRESS:
        raise RaceNotInProgress()

    if typed is not None:
        if not isinstance(typed, str):
            raise InvalidRequest('typed must be a string')
        report = measure_since(room.text, typed, room.start_time)
        if not report.valid_so_far:
            return _ignored(player, 'divergent input')
        new_progress, new_wpm = report.progress, report.wpm
    else:
        new_progress = int(max(0, min(100, _coerce_number(progress, 'progress'))))
        new_wpm = int(max(0, _coerce_number(wpm, 'wpm')))

    # finished_at is written once; a push that lost to a finish changes nothing
    values = {'progress': new_progress, 'wpm': new_wpm}
    if new_progress >= 100:
        values['finished_at'] = utcnow()
    result = db.session.execute(
        db.update(Player)
        .where(Player.id == player.id, Player.finished_at.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(player)
    if result.rowcount == 0:
        return _ignored(player, 'already finished')

    if new_progress >= 100:
        current_app.logger.info(f"[player-finish] room={room.code} player={player.id} wpm={player.wpm}")
        if current_app.config.get('AUTO_FINISH_ROOMS', True) and all_players_finished(room):
            finish_room(room, reason='all players finished')

    return PushResult(True, player.progress, player.wpm, player.finished_at)
