from charades import socketio


def _events(sio_client, name=None):
    received = sio_client.get_received('/ws')
    if name is None:
        return received
    return [e['args'][0] if e['args'] else None for e in received if e['name'] == name]


def _lobby_with_game(players):
    (host, _), *guests = players
    items = [{'content': f'Prompt {i}', 'category': None} for i in range(8)]
    assert host.post('/api/tasks', json={'tasks': items}).status_code == 201
    code = host.post('/api/lobbies/create', json={'tasks_per_player': 2}).get_json()['code']
    for guest, _ in guests:
        guest.post('/api/lobbies/join', json={'code': code})
    game = host.post(f'/api/lobbies/{code}/start').get_json()['lobby']['current_game_state']
    by_id = {pid: c for c, pid in players}
    return code, by_id, game


def _socket_for(flask_app, http_client):
    return socketio.test_client(flask_app, flask_test_client=http_client, namespace='/ws')


def test_socket_connect_and_join(sio_client, players):
    assert sio_client.is_connected('/ws')
    connected = _events(sio_client, 'connected')
    assert connected and connected[0]['player_id'] is None

    sio_client.emit('join_lobby', {'code': '999999'}, namespace='/ws')
    assert _events(sio_client, 'error')[0]['error'] == 'lobby_not_found'

    code, _, _ = _lobby_with_game(players)
    sio_client.emit('join_lobby', {'code': code}, namespace='/ws')
    joined = _events(sio_client, 'joined')
    assert joined[0]['lobby']['code'] == code
    assert joined[0]['room'] == f"lobby:{joined[0]['lobby']['id']}"
    assert len(joined[0]['lobby']['players']) == 3


def test_connect_with_nickname_and_pin(flask_app, players):
    sock = socketio.test_client(flask_app, namespace='/ws', auth={'nickname': 'bob', 'pin': '1234'})
    assert _events(sock, 'connected')[0]['player_id'] == players[1][1]
    bad = socketio.test_client(flask_app, namespace='/ws', auth={'nickname': 'bob', 'pin': '0000'})
    assert _events(bad, 'connected')[0]['player_id'] is None
    sock.disconnect(namespace='/ws')
    bad.disconnect(namespace='/ws')


def test_action_pushes_lobby_update_to_the_room(flask_app, sio_client, players):
    code, by_id, game = _lobby_with_game(players)
    sio_client.emit('join_lobby', {'code': code}, namespace='/ws')
    _events(sio_client)

    by_id[game['turn']['narratorId']].post(f'/api/lobbies/{code}/begin')
    updates = _events(sio_client, 'lobby_update')
    assert len(updates) == 1
    assert updates[0]['current_game_state']['phase'] == 'playing'
    assert updates[0]['current_game_state']['version'] == 2


def test_game_action_over_socket(flask_app, players):
    code, by_id, game = _lobby_with_game(players)
    narrator_id = game['turn']['narratorId']
    sock = _socket_for(flask_app, by_id[narrator_id])
    sock.emit('join_lobby', {'code': code}, namespace='/ws')
    _events(sock)

    ack = sock.emit('game_action', {'action': 'begin', 'code': code}, namespace='/ws', callback=True)
    assert ack['ok']
    assert ack['lobby']['current_game_state']['phase'] == 'playing'

    guesser_id = next(pid for pid in by_id if pid != narrator_id)
    ack = sock.emit('game_action', {'action': 'guess', 'code': code, 'guesser_id': guesser_id}, namespace='/ws', callback=True)
    assert ack['lobby']['current_game_state']['phase'] == 'reveal'
    names = [e['name'] for e in _events(sock)]
    assert 'lobby_update' in names
    assert 'players_update' in names

    # a second submission of the same transition is refused, not re-applied
    ack = sock.emit('game_action', {'action': 'guess', 'code': code, 'guesser_id': guesser_id}, namespace='/ws', callback=True)
    assert ack == {'ok': False, 'error': 'invalid_phase', 'message': 'Cannot guess while phase is reveal'}

    ack = sock.emit('game_action', {'action': 'dance', 'code': code}, namespace='/ws', callback=True)
    assert ack['error'] == 'unknown_action'
    sock.disconnect(namespace='/ws')


def test_bystander_action_is_not_authorized(flask_app, players):
    code, by_id, game = _lobby_with_game(players)
    bystander_id = next(pid for pid in by_id if pid != game['turn']['narratorId'])
    sock = _socket_for(flask_app, by_id[bystander_id])
    ack = sock.emit('game_action', {'action': 'begin', 'code': code}, namespace='/ws', callback=True)
    assert ack['error'] == 'not_authorized'
    sock.disconnect(namespace='/ws')


def test_anonymous_action_is_refused(sio_client, players):
    code, _, _ = _lobby_with_game(players)
    ack = sio_client.emit('game_action', {'action': 'begin', 'code': code}, namespace='/ws', callback=True)
    assert ack['error'] == 'not_authenticated'


def test_get_lobby_ack(sio_client, players):
    code, _, _ = _lobby_with_game(players)
    ack = sio_client.emit('get_lobby', {'code': code}, namespace='/ws', callback=True)
    assert ack['ok']
    lobby_id = ack['lobby']['id']
    ack = sio_client.emit('get_lobby', {'lobby_id': lobby_id}, namespace='/ws', callback=True)
    assert ack['lobby']['code'] == code
    ack = sio_client.emit('get_lobby', {'lobby_id': lobby_id + 100}, namespace='/ws', callback=True)
    assert ack['error'] == 'lobby_not_found'
    ack = sio_client.emit('get_lobby', {'lobby_id': 'abc'}, namespace='/ws', callback=True)
    assert ack['ok'] is False
    assert ack['error'] == 'invalid_request'


def test_disband_shows_canceled_before_deletion(sio_client, players):
    code, _, _ = _lobby_with_game(players)
    sio_client.emit('join_lobby', {'code': code}, namespace='/ws')
    _events(sio_client)

    host, _ = players[0]
    assert host.post(f'/api/lobbies/{code}/disband').status_code == 200
    received = [e for e in _events(sio_client) if e['name'] in ('lobby_update', 'lobby_deleted')]
    assert [e['name'] for e in received] == ['lobby_update', 'lobby_deleted']
    update = received[0]['args'][0]
    assert update['status'] == 'finished'
    assert update['current_game_state']['phase'] == 'canceled'


def test_join_pushes_players_update(sio_client, players, register_player):
    code, _, _ = _lobby_with_game(players[:2])
    sio_client.emit('join_lobby', {'code': code}, namespace='/ws')
    _events(sio_client)
    # the game already started, but joining a live lobby is still allowed
    newcomer, _ = register_player('dave')
    newcomer.post('/api/lobbies/join', json={'code': code})
    updates = _events(sio_client, 'players_update')
    assert [p['nickname'] for p in updates[0]['players']][-1] == 'dave'


def test_ping(sio_client):
    sio_client.emit('ping', {'t': 1}, namespace='/ws')
    assert _events(sio_client, 'pong') == [{'t': 1}]
