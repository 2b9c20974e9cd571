import json
import os
import sys
import pytest

# Ensure the backend root (containing the `bingo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bingo import create_app, socketio, get_engine, WS_NAMESPACE


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SERVICE_FEE = 3
    WIN_PERCENTAGE = 80
    CALL_INTERVAL_SEC = 7
    GAME_TYPE = '75ball'
    MAX_NUMBERS = 75
    POOL_INCLUDES_DISCONNECTED = False
    VERIFICATION_MODE = 'strict'
    WINNERS_DISPLAY_LIMIT = 10
    DEFAULT_STAKE = 25
    ADMIN_PASSWORD_HASH = None
    CORS_ORIGINS = ['http://localhost:5173']


class RecordingSender:
    """Collects outbound frames per connection, decoded."""

    def __init__(self):
        self.frames = []

    def __call__(self, conn_id, text):
        self.frames.append((conn_id, json.loads(text)))

    def to(self, conn_id, event_type=None):
        return [msg for conn, msg in self.frames
                if conn == conn_id and (event_type is None or msg['type'] == event_type)]

    def types(self, conn_id):
        return [msg['type'] for conn, msg in self.frames if conn == conn_id]

    def clear(self):
        self.frames.clear()


class RecordingSpawn:
    """Stands in for a background task launcher without starting threads."""

    def __init__(self):
        self.started = []

    def __call__(self, target, *args):
        self.started.append((target, args))


def decode_frames(received):
    """Turn Socket.IO test client packets into envelopes."""
    frames = []
    for pkt in received:
        if pkt['name'] != 'message':
            continue
        args = pkt['args']
        if isinstance(args, list):
            args = args[0]
        frames.append(json.loads(args) if isinstance(args, str) else args)
    return frames


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def spawn():
    return RecordingSpawn()


@pytest.fixture()
def engine(sender, spawn):
    import random
    from bingo.services.engine import SessionEngine
    eng = SessionEngine(sender, spawn=spawn, rng=random.Random(1234))
    eng.on_open('admin')
    eng.register_admin('admin')
    sender.clear()
    return eng


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def app_engine(flask_app):
    return get_engine(flask_app)


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace=WS_NAMESPACE
    )
    yield test_client
    try:
        test_client.disconnect(namespace=WS_NAMESPACE)
    except Exception:
        pass


GRID_75 = [
    [5, 12, 47, 63, 71],
    [1, 16, 31, 46, 61],
    [2, 17, 'FREE', 48, 62],
    [3, 18, 33, 49, 64],
    [4, 19, 34, 50, 65],
]


def make_board(grid=GRID_75, variant='75ball', pattern=None):
    """Grid values: ints, 'FREE', or None for a blank slot."""
    from bingo.models import Board, Cell
    rows = []
    for r, values in enumerate(grid):
        row = []
        for c, value in enumerate(values):
            if value == 'FREE':
                row.append(Cell(row=r, col=c, free=True, marked=True))
            else:
                row.append(Cell(row=r, col=c, value=value))
        rows.append(row)
    return Board(variant=variant, layout=f'{len(grid[0])}x{len(grid)}', rows=rows, pattern=pattern)
