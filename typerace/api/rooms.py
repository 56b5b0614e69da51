from flask import Blueprint, jsonify, request, current_app
from typerace.errors import InvalidRequest
from typerace.models import isoformat
from typerace.services.race.lifecycle import create_room, join_room, start_race, finish_race
from typerace.services.race.sync import room_snapshot, push_progress


rooms = Blueprint('rooms', __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest('Request body must be a JSON object')
    return data


@rooms.route('/create', methods=['POST'])
def create():
    data = _json_body()
    room = create_room(text=data.get('text'))
    return jsonify({'code': room.code}), 201


@rooms.route('/join', methods=['POST'])
def join():
    data = _json_body()
    code = data.get('code')
    name = data.get('name')
    if not all([code, name]):
        return jsonify({'error': 'Code and name are required', 'code': InvalidRequest.code}), 400

    player, created = join_room(code, name, client_token=data.get('client_token'))
    return jsonify({
        'player_id': player.id,
        'is_host': player.room.host_id == player.id,
    }), 201 if created else 200


@rooms.route('/<string:code>/start', methods=['POST'])
def start(code):
    data = _json_body()
    room = start_race(code, data.get('player_id'))
    return jsonify({'status': room.status, 'start_time': isoformat(room.start_time)})


@rooms.route('/<string:code>/finish', methods=['POST'])
def finish(code):
    data = _json_body()
    room = finish_race(code, data.get('player_id'))
    return jsonify({'status': room.status, 'finished_at': isoformat(room.finished_at)})


@rooms.route('/<string:code>/sync', methods=['GET'])
def snapshot(code):
    room, players = room_snapshot(code)
    payload = room.to_dict(players=players)
    # Clients poll on the server's cadence
    payload['poll_interval'] = float(current_app.config.get('SYNC_POLL_INTERVAL_SEC', 1.0))
    return jsonify(payload)


@rooms.route('/<string:code>/sync', methods=['POST'])
def push(code):
    data = _json_body()
    player_id = data.get('player_id')
    if not player_id:
        return jsonify({'error': 'Player ID required', 'code': InvalidRequest.code}), 400

    if 'typed' in data:
        result = push_progress(code, player_id, typed=data.get('typed'))
    else:
        result = push_progress(code, player_id, progress=data.get('progress'), wpm=data.get('wpm'))
    return jsonify(result.to_dict())
