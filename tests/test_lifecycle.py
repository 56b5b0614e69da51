import pytest

from typerace import db
from typerace.errors import (
    GenerationConflict,
    InvalidTransition,
    NotAuthorized,
    RaceAlreadyStarted,
    RoomNotFound,
)
from typerace.models import FINISHED, IN_PROGRESS, STARTING, WAITING, Player, Room, utcnow
from typerace.services.race import lifecycle
from typerace.services.race.lifecycle import (
    can_transition,
    create_room,
    finish_race,
    join_room,
    require_transition,
    start_race,
)


def test_transition_table():
    assert can_transition(WAITING, STARTING)
    assert can_transition(WAITING, IN_PROGRESS)
    assert can_transition(STARTING, IN_PROGRESS)
    assert can_transition(IN_PROGRESS, FINISHED)
    assert not can_transition(IN_PROGRESS, WAITING)
    assert not can_transition(FINISHED, IN_PROGRESS)
    assert not can_transition(FINISHED, WAITING)
    with pytest.raises(InvalidTransition):
        require_transition(FINISHED, IN_PROGRESS)


def test_create_room_defaults(flask_app):
    room = create_room()
    assert room.status == WAITING
    assert room.start_time is None
    assert room.host_id is None
    assert room.text.strip()


def test_create_room_retries_collisions(flask_app, monkeypatch):
    taken = create_room(text='first').code
    codes = iter([taken, taken, 'FRESH1'])
    monkeypatch.setattr(lifecycle, 'generate_room_code', lambda length=6: next(codes))
    room = create_room(text='second')
    assert room.code == 'FRESH1'


def test_create_room_gives_up_after_bounded_attempts(flask_app, monkeypatch):
    taken = create_room(text='first').code
    calls = []

    def always_taken(length=6):
        calls.append(length)
        return taken

    monkeypatch.setattr(lifecycle, 'generate_room_code', always_taken)
    with pytest.raises(GenerationConflict):
        create_room(text='second')
    assert len(calls) == flask_app.config['ROOM_CODE_MAX_ATTEMPTS']
    assert Room.query.count() == 1


def test_first_joiner_becomes_host(flask_app):
    room = create_room(text='abc')
    alice, created = join_room(room.code, 'Alice')
    bob, _ = join_room(room.code, 'Bob')
    assert created is True
    db.session.refresh(room)
    assert room.host_id == alice.id
    assert room.host_id != bob.id


def test_host_claim_is_exactly_once(flask_app):
    """Two joiners that both observed no host: only one claim lands."""
    room = create_room(text='abc')
    first = Player(name='A', room_id=room.id)
    second = Player(name='B', room_id=room.id)
    db.session.add_all([first, second])
    db.session.flush()

    results = [lifecycle._claim_host(room.id, first.id), lifecycle._claim_host(room.id, second.id)]
    db.session.commit()
    db.session.refresh(room)

    assert results == [True, False]
    assert room.host_id == first.id


def test_host_never_changes(flask_app):
    room = create_room(text='abc')
    alice, _ = join_room(room.code, 'Alice')
    for name in ('Bob', 'Cara', 'Dan'):
        join_room(room.code, name)
    db.session.refresh(room)
    assert room.host_id == alice.id


def test_join_unknown_room(flask_app):
    with pytest.raises(RoomNotFound):
        join_room('NOPE99', 'Alice')


def test_join_rejected_unless_waiting(flask_app):
    room = create_room(text='abc')
    host, _ = join_room(room.code, 'Alice')
    start_race(room.code, host.id)
    with pytest.raises(RaceAlreadyStarted):
        join_room(room.code, 'Bob')
    assert Player.query.filter_by(room_id=room.id).count() == 1


def test_join_rejected_while_starting(flask_app):
    room = create_room(text='abc')
    room.status = STARTING
    db.session.commit()
    with pytest.raises(RaceAlreadyStarted):
        join_room(room.code, 'Bob')


def test_join_rejected_when_start_lands_mid_join(flask_app, monkeypatch):
    room = create_room(text='abc')
    host, _ = join_room(room.code, 'Alice')

    def start_then_player(**kwargs):
        # The host's start commits after this join saw the room waiting
        db.session.execute(
            db.update(Room).where(Room.id == room.id).values(status=IN_PROGRESS, start_time=utcnow())
        )
        db.session.commit()
        return Player(**kwargs)

    monkeypatch.setattr(lifecycle, 'Player', start_then_player)
    with pytest.raises(RaceAlreadyStarted):
        join_room(room.code, 'Late')

    names = [p.name for p in Player.query.filter_by(room_id=room.id).all()]
    assert names == ['Alice']
    db.session.refresh(room)
    assert room.status == IN_PROGRESS
    assert room.host_id == host.id


def test_join_token_replay_after_start_returns_same_player(flask_app):
    room = create_room(text='abc')
    alice, _ = join_room(room.code, 'Alice', client_token='device-1')
    start_race(room.code, alice.id)
    again, created = join_room(room.code, 'Alice', client_token='device-1')
    assert created is False
    assert again.id == alice.id


def test_start_requires_host(flask_app):
    room = create_room(text='abc')
    join_room(room.code, 'Alice')
    bob, _ = join_room(room.code, 'Bob')
    with pytest.raises(NotAuthorized):
        start_race(room.code, bob.id)
    db.session.refresh(room)
    assert room.status == WAITING
    assert room.start_time is None


def test_start_without_host_is_allowed(flask_app):
    room = create_room(text='abc')
    started = start_race(room.code, None)
    assert started.status == IN_PROGRESS
    assert started.start_time is not None


def test_start_is_idempotent(flask_app):
    room = create_room(text='abc')
    host, _ = join_room(room.code, 'Alice')
    first = start_race(room.code, host.id).start_time
    second = start_race(room.code, host.id).start_time
    assert first == second
    stored = Room.query.filter_by(code=room.code).one()
    assert stored.start_time == first
    assert stored.status == IN_PROGRESS


def test_start_completes_a_starting_room(flask_app):
    room = create_room(text='abc')
    host, _ = join_room(room.code, 'Alice')
    room.status = STARTING
    db.session.commit()
    started = start_race(room.code, host.id)
    assert started.status == IN_PROGRESS
    assert started.start_time is not None


def test_finish_race_by_host(flask_app):
    room = create_room(text='abc')
    host, _ = join_room(room.code, 'Alice')
    start_race(room.code, host.id)
    finished = finish_race(room.code, host.id)
    assert finished.status == FINISHED
    assert finished.finished_at is not None
    # start after finish reports the original start without reopening
    replay = start_race(room.code, host.id)
    assert replay.status == FINISHED


def test_start_replay_from_another_client_reports_original_start(flask_app):
    room = create_room(text='abc')
    host, _ = join_room(room.code, 'Alice')
    guest, _ = join_room(room.code, 'Bob')
    started = start_race(room.code, host.id).start_time
    replay = start_race(room.code, guest.id)
    assert replay.status == IN_PROGRESS
    assert replay.start_time == started
