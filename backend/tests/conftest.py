import heapq
import itertools
import os
import sys
import pytest

# Ensure the backend root (containing the `sudoku_battle` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from sudoku_battle import create_app, socketio
from sudoku_battle.broadcast import NAMESPACE
from sudoku_battle.models import MatchSession
from sudoku_battle.services.games.coordinator import MatchCoordinator
from sudoku_battle.services.games.scheduler import TimerHandle

# A valid solved grid: row r is 1-9 shifted by 3r + r//3
SOLUTION = [[(r * 3 + r // 3 + c) % 9 + 1 for c in range(9)] for r in range(9)]
# One blank per row, column and box, so the completion is forced
BLANKS = [(0, 0), (4, 4), (8, 8)]

MATCH_CONFIG = {
    'COUNTDOWN_FROM': 3,
    'COUNTDOWN_DELAY_SEC': 0.5,
    'COUNTDOWN_TICK_SEC': 1.0,
    'RECONNECT_GRACE_SEC': 30,
    'RESUME_ON_REJOIN': True,
    'HINTS_PER_PLAYER': 3,
    'CHAT_HISTORY_LIMIT': 50,
    'CHAT_MAX_LENGTH': 120,
    'SESSION_TTL_SEC': 7200,
}


def carve(blanks=BLANKS):
    puzzle = [list(row) for row in SOLUTION]
    for r, c in blanks:
        puzzle[r][c] = 0
    return puzzle


def fixed_puzzle_factory(difficulty):
    return [list(row) for row in SOLUTION], carve()


class ManualScheduler:
    """Holds delayed callbacks until the test advances time."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay, callback, *args):
        handle = TimerHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback, args))
        return handle

    def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback, args = heapq.heappop(self._queue)
            self.now = due
            if not handle.cancelled:
                callback(*args)
        self.now = target

    @property
    def pending(self):
        return sum(1 for entry in self._queue if not entry[2].cancelled)


class FakeClock:
    def __init__(self, start=1_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class RecordingBroadcaster:
    def __init__(self):
        self.sent = []
        self.rooms = {}
        self.left = []

    def enter(self, sid, code):
        self.rooms.setdefault(code, set()).add(sid)

    def leave(self, sid, code):
        self.left.append((sid, code))
        self.rooms.get(code, set()).discard(sid)

    def to_session(self, code, event, payload=None):
        self.sent.append((code, event, payload or {}))

    def to_connection(self, sid, event, payload=None):
        if sid:
            self.sent.append((sid, event, payload or {}))

    def names(self):
        return [event for _, event, _ in self.sent]

    def of(self, event):
        return [payload for _, event_name, payload in self.sent if event_name == event]

    def to(self, target):
        return [(event, payload) for t, event, payload in self.sent if t == target]


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def make_coordinator(broadcaster, scheduler, clock):
    def _make(blanks=BLANKS, mode='competitive', code='ABC234', **overrides):
        config = dict(MATCH_CONFIG, **overrides)
        session = MatchSession(code, mode, 'easy', [list(r) for r in SOLUTION], carve(blanks),
                               created_at=clock(), hints_per_player=config['HINTS_PER_PLAYER'])
        return MatchCoordinator(session, broadcaster, scheduler, config=config, clock=clock)
    return _make


@pytest.fixture()
def playing(make_coordinator, scheduler):
    """A coordinator whose match has gone through the countdown."""
    def _start(**kwargs):
        coordinator = make_coordinator(**kwargs)
        p1 = coordinator.host('Ann', 'sid-1')
        p2, _ = coordinator.join('Ben', 'sid-2')
        scheduler.advance(3.5)
        assert coordinator.session.game_state == 'playing'
        return coordinator, p1, p2
    return _start


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = '*'
    COUNTDOWN_FROM = 3
    COUNTDOWN_DELAY_SEC = 0.5
    COUNTDOWN_TICK_SEC = 1.0
    RECONNECT_GRACE_SEC = 30
    RESUME_ON_REJOIN = True
    SESSION_TTL_SEC = 7200
    HINTS_PER_PLAYER = 3
    CHAT_HISTORY_LIMIT = 50
    CHAT_MAX_LENGTH = 120
    SOLVER_NODE_BUDGET = 200000


@pytest.fixture()
def flask_app(scheduler, clock):
    application = create_app(TestConfig, scheduler=scheduler,
                             puzzle_factory=fixed_puzzle_factory, clock=clock)
    yield application
    application.extensions['sudoku_battle'].close()


@pytest.fixture()
def registry(flask_app):
    return flask_app.extensions['sudoku_battle']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_sio_client(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, namespace=NAMESPACE)
        test_client.get_received(NAMESPACE)  # flush 'connected'
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected(NAMESPACE):
                test_client.disconnect(namespace=NAMESPACE)
        except Exception:
            pass
