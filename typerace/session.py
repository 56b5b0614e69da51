"""Client-side room session.

Binds one client identity to one room: joins, starts, polls the snapshot on a
repeating background task and pushes typed input. The polling task is owned by
the session and is always cancelled when the session context exits.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from typerace.errors import ERRORS_BY_CODE, RaceError
from typerace.models import IN_PROGRESS, normalize_code
from typerace.services.race.progress import ProgressReport, measure_since

logger = logging.getLogger(__name__)


class IdentityStore:
    """Key-value store for client identity (display name, player ids)."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemoryIdentityStore(IdentityStore):
    def __init__(self):
        self._values: Dict[str, str] = {}

    def get(self, key):
        return self._values.get(key)

    def set(self, key, value):
        self._values[key] = value


class RepeatingTask:
    """Call ``fn`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, fn: Callable[[], Any], name: str = 'repeating-task'):
        self.interval = interval
        self.fn = fn
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> 'RepeatingTask':
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"[poll-start] task={self.name} interval={self.interval}s")
        return self

    def cancel(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else max(1.0, self.interval * 2))
        logger.info(f"[poll-stop] task={self.name}")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.fn()
            except Exception as exc:
                # A failed tick is retried on the next interval
                logger.warning(f"[poll-error] task={self.name} {exc.__class__.__name__}: {exc}")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
        return False


def _raise_for_error(response: httpx.Response) -> dict:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if response.is_success:
        return payload if isinstance(payload, dict) else {}
    if isinstance(payload, dict):
        error_cls = ERRORS_BY_CODE.get(payload.get('code'))
        if error_cls is not None:
            raise error_cls(payload.get('error'))
        raise RaceError(payload.get('error') or f'HTTP {response.status_code}')
    response.raise_for_status()
    return {}


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RoomSession:
    """One client's view of a room.

    Use as a context manager to hold the room open; the snapshot is polled
    every ``poll_interval`` seconds while inside the block.
    """

    def __init__(self, code: str, client: httpx.Client, identity: Optional[IdentityStore] = None,
                 poll_interval: Optional[float] = None,
                 on_snapshot: Optional[Callable[[dict], Any]] = None):
        self.code = normalize_code(code)
        self.client = client
        self.identity = identity or MemoryIdentityStore()
        self.poll_interval = poll_interval
        self.on_snapshot = on_snapshot
        self.room: Optional[dict] = None
        self._task: Optional[RepeatingTask] = None
        self._lock = threading.Lock()

    @property
    def player_id(self) -> Optional[str]:
        return self.identity.get(f'player:{self.code}')

    @property
    def is_host(self) -> bool:
        return bool(self.room and self.player_id and self.room.get('host_id') == self.player_id)

    def __enter__(self):
        # One synchronous pull so the caller starts with state and the server cadence
        self.poll_once()
        interval = self.poll_interval
        if interval is None:
            interval = float((self.room or {}).get('poll_interval') or 1.0)
        self._task = RepeatingTask(interval, self.poll_once, name=f'poll:{self.code}')
        self._task.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    def poll_once(self) -> dict:
        snapshot = _raise_for_error(self.client.get(f'/api/room/{self.code}/sync'))
        with self._lock:
            self.room = snapshot
        if self.on_snapshot is not None:
            self.on_snapshot(snapshot)
        return snapshot

    def join(self, name: str) -> str:
        """Join the room, reusing the same client token across retries."""
        token_key = f'token:{self.code}'
        token = self.identity.get(token_key)
        if token is None:
            token = uuid.uuid4().hex
            self.identity.set(token_key, token)
        data = _raise_for_error(self.client.post(
            '/api/room/join', json={'code': self.code, 'name': name, 'client_token': token}))
        self.identity.set('name', name)
        self.identity.set(f'player:{self.code}', data['player_id'])
        return data['player_id']

    def start(self) -> Optional[datetime]:
        data = _raise_for_error(self.client.post(
            f'/api/room/{self.code}/start', json={'player_id': self.player_id}))
        return _parse_time(data.get('start_time'))

    def finish(self) -> dict:
        return _raise_for_error(self.client.post(
            f'/api/room/{self.code}/finish', json={'player_id': self.player_id}))

    def type_text(self, text: str, now: Optional[datetime] = None) -> ProgressReport:
        """Measure local input and push it when it is still a clean prefix."""
        with self._lock:
            room = dict(self.room or {})
        start_time = _parse_time(room.get('start_time'))
        report = measure_since(room.get('text') or '', text, start_time, now)
        if report.valid_so_far and room.get('status') == IN_PROGRESS and self.player_id:
            _raise_for_error(self.client.post(
                f'/api/room/{self.code}/sync', json={'player_id': self.player_id, 'typed': text}))
        return report
