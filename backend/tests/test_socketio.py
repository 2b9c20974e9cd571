import json
import time

from bingo import socketio, WS_NAMESPACE

from conftest import decode_frames, make_board


def send(test_client, msg_type, **data):
    test_client.send(json.dumps({'type': msg_type, 'data': data}), namespace=WS_NAMESPACE)


def frames(test_client, msg_type=None):
    received = decode_frames(test_client.get_received(WS_NAMESPACE))
    return [f for f in received if msg_type is None or f['type'] == msg_type]


def new_client(flask_app):
    return socketio.test_client(flask_app, namespace=WS_NAMESPACE)


def test_socket_connect_registers_connection(sio_client, app_engine):
    assert sio_client.is_connected(WS_NAMESPACE)
    assert len(app_engine.registry) == 1


def test_join_over_socket(flask_app, sio_client, app_engine):
    send(sio_client, 'joinGame', name='Alice', stake=50, boardType='30ball')
    received = frames(sio_client)
    assert [f['type'] for f in received[:2]] == ['board', 'gameState']
    board = received[0]['data']
    assert board['type'] == '30ball'
    assert len(board['numbers']) == 3
    assert received[1]['data']['settings']['maxNumbers'] == 30
    assert app_engine.state.participants


def test_malformed_frame_keeps_connection_open(sio_client):
    sio_client.send('{not json', namespace=WS_NAMESPACE)
    errors = frames(sio_client, 'error')
    assert errors[0]['data']['code'] == 'malformed_message'
    assert sio_client.is_connected(WS_NAMESPACE)


def test_unauthenticated_admin_command(sio_client, app_engine):
    send(sio_client, 'adminStartGame')
    errors = frames(sio_client, 'error')
    assert errors and errors[0]['data']['code'] == 'unauthorized'
    assert app_engine.state.active is False


def test_admin_game_flow_reaches_players(flask_app, sio_client, app_engine):
    admin = new_client(flask_app)
    send(admin, 'setAdmin')
    assert frames(admin, 'gameState')

    send(sio_client, 'joinGame', name='Alice', stake=100)
    joined = frames(admin, 'playerJoined')
    assert joined[0]['data']['name'] == 'Alice'
    frames(sio_client)

    send(admin, 'adminStartGame')
    assert frames(sio_client, 'gameState')[-1]['data']['gameActive'] is True

    participant = next(iter(app_engine.state.participants.values()))
    participant.board = make_board()
    for number in (12, 47, 63, 5, 71):
        send(admin, 'adminCallSpecific', number=number)
    called = frames(sio_client, 'numberCalled')
    assert [f['data']['number'] for f in called] == [12, 47, 63, 5, 71]

    send(admin, 'adminCallSpecific', number=12)
    assert frames(admin, 'error')[-1]['data']['message'] == 'Number already called'
    assert len(app_engine.state.called_numbers) == 5

    for number in (5, 12, 47, 63, 71):
        send(sio_client, 'markNumber', number=number)
    assert frames(sio_client, 'winReady')[-1]['data']['pattern'] == 'row'

    send(sio_client, 'claimBingo', pattern='row')
    announced = frames(admin, 'winnerAnnounced')
    assert announced[0]['data']['playerName'] == 'Alice'
    assert announced[0]['data']['prize'] == 77
    admin.disconnect(namespace=WS_NAMESPACE)


def test_player_disconnect_notifies_admin(flask_app, app_engine):
    admin = new_client(flask_app)
    send(admin, 'setAdmin')
    player = new_client(flask_app)
    send(player, 'joinGame', name='Bob')
    frames(admin)

    player.disconnect(namespace=WS_NAMESPACE)
    received = frames(admin)
    left = [f for f in received if f['type'] == 'playerLeft']
    assert left and left[0]['data']['name'] == 'Bob'
    state = [f for f in received if f['type'] == 'gameState'][-1]['data']
    assert state['players'][0]['connected'] is False
    assert state['stats']['connectedPlayers'] == 0
    admin.disconnect(namespace=WS_NAMESPACE)


def test_auto_call_ticks_in_background(flask_app, app_engine):
    admin = new_client(flask_app)
    send(admin, 'setAdmin')
    send(admin, 'adminUpdateSettings', callInterval=0.1)
    send(admin, 'adminStartGame')
    send(admin, 'adminToggleAutoCall', enabled=True)
    try:
        deadline = time.time() + 3.0
        got = False
        while time.time() < deadline and not got:
            got = bool(frames(admin, 'numberCalled'))
            if not got:
                time.sleep(0.05)
        assert got
    finally:
        send(admin, 'adminToggleAutoCall', enabled=False)
    assert app_engine.state.timer is None
    admin.disconnect(namespace=WS_NAMESPACE)
