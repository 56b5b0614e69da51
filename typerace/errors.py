"""Race error taxonomy.

Service functions raise these; the app factory renders them as
``{"error": message, "code": code}`` with the matching HTTP status.
"""

from typing import Dict, Optional, Type


class RaceError(Exception):
    code = 'race_error'
    status_code = 400
    message = 'Race request failed'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class InvalidRequest(RaceError):
    code = 'invalid_request'
    status_code = 400
    message = 'Invalid request'


class RoomNotFound(RaceError):
    code = 'room_not_found'
    status_code = 404
    message = 'Room not found'


class PlayerNotFound(RaceError):
    code = 'player_not_found'
    status_code = 404
    message = 'Player not found'


class NotAuthorized(RaceError):
    code = 'not_authorized'
    status_code = 403
    message = 'Only the host may do that'


class RaceAlreadyStarted(RaceError):
    code = 'race_already_started'
    status_code = 409
    message = 'Race already started'


class RaceNotInProgress(RaceError):
    code = 'race_not_in_progress'
    status_code = 409
    message = 'Race is not in progress'


class InvalidTransition(RaceError):
    code = 'invalid_transition'
    status_code = 409
    message = 'Illegal room status transition'


class GenerationConflict(RaceError):
    code = 'generation_conflict'
    status_code = 503
    message = 'Could not allocate a unique room code'


class TransientStoreFailure(RaceError):
    code = 'store_unavailable'
    status_code = 503
    message = 'Room store unavailable, try again'


ERRORS_BY_CODE: Dict[str, Type[RaceError]] = {
    cls.code: cls for cls in (
        InvalidRequest,
        RoomNotFound,
        PlayerNotFound,
        NotAuthorized,
        RaceAlreadyStarted,
        RaceNotInProgress,
        InvalidTransition,
        GenerationConflict,
        TransientStoreFailure,
    )
}
