import os
import sys
import pytest

# Ensure the backend root (containing the `scoreboard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from scoreboard import create_app, db, socketio
from scoreboard.services.sync import InMemoryStore, ScoreboardSession, SessionConfig


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    MIN_HOST_PASSWORD_LENGTH = 4
    REJECT_STALE_WRITES = False


class SyncTestConfig:
    TICK_INTERVAL_SEC = 1
    AUTOSAVE_INTERVAL_SEC = 30
    CLOCK_MODE = 'counter'


class DeadlineSyncConfig(SyncTestConfig):
    CLOCK_MODE = 'deadline'


class ManualTicker:
    """Ticker double: fires only when the test says so."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.joined = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def join(self, timeout=None):
        self.joined = True

    def is_alive(self):
        # No thread behind it
        return False

    @property
    def active(self):
        return self.started and not self.cancelled

    def fire(self):
        if self.active:
            self.callback()


class TickerRegistry:
    """Ticker factory that records every ticker a session creates."""

    def __init__(self):
        self.created = []

    def __call__(self, interval, callback):
        ticker = ManualTicker(interval, callback)
        self.created.append(ticker)
        return ticker

    def active(self, interval=None):
        return [t for t in self.created if t.active and (interval is None or t.interval == interval)]

    def tick(self, times=1):
        """Fire the active clock tickers ``times`` times."""
        for _ in range(times):
            for ticker in self.active(SyncTestConfig.TICK_INTERVAL_SEC):
                ticker.fire()

    def autosave(self):
        for ticker in self.active(SyncTestConfig.AUTOSAVE_INTERVAL_SEC):
            ticker.fire()


class FakeClock:
    def __init__(self, start=1_760_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import scoreboard.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def host_tickers():
    return TickerRegistry()


@pytest.fixture()
def viewer_tickers():
    return TickerRegistry()


@pytest.fixture()
def game_config():
    return SessionConfig(
        game_name='City Final',
        period_duration=12,
        shot_clock_duration=24,
        team_a_name='Hawks',
        team_b_name='Owls',
        team_a_roster=[{'number': 7, 'name': 'Ada'}, {'number': 23, 'name': 'Bo', 'position': 'C'}],
        team_b_roster=[{'number': 4, 'name': 'Cy'}],
        game_type='full',
    )


@pytest.fixture()
def host_session(store, game_config, host_tickers, fake_clock):
    session = ScoreboardSession.host(
        store, game_config, config=SyncTestConfig, ticker_factory=host_tickers, clock=fake_clock
    )
    yield session
    session.close()


@pytest.fixture()
def viewer_session(store, host_session, viewer_tickers, fake_clock):
    session = ScoreboardSession.watch(
        store, host_session.code, config=SyncTestConfig, ticker_factory=viewer_tickers, clock=fake_clock
    )
    yield session
    session.close()
