import threading

import pytest

from conftest import DeadlineSyncConfig, SyncTestConfig, TickerRegistry
from scoreboard.services.sync import ScoreboardSession, signals
from scoreboard.services.sync import mutations as ops
from scoreboard.services.sync.clock import ThreadTicker, advance_clock, recompute_from_deadlines


@pytest.fixture()
def state(game_config):
    return game_config.build_state('123456', 0)


def _collect(signal, sender):
    received = []

    def receiver(sender, **kwargs):
        received.append(kwargs)

    signal.connect(receiver, sender=sender, weak=False)
    return received, lambda: signal.disconnect(receiver, sender=sender)


def test_stopped_clocks_do_not_move(state):
    new, outcome = advance_clock(state, is_host=True)
    assert new == state
    assert not outcome.needs_persist


def test_game_clock_rolls_over_minutes(state):
    state = ops.toggle_clock(ops.edit_game_clock(state, 2, 0))
    new, _ = advance_clock(state, is_host=True)
    assert new.clock.game_time.as_tuple() == (1, 59)
    assert new.clock.shot_clock == 23


def test_clock_is_strictly_decreasing_until_zero(state):
    state = ops.toggle_clock(ops.edit_game_clock(state, 0, 30))
    seen = []
    for _ in range(40):
        state, _ = advance_clock(state, is_host=True)
        seen.append(state.clock.game_time.total_seconds)
    assert seen[:30] == list(range(29, -1, -1))
    assert seen[30:] == [0] * 10
    assert min(seen) == 0


def test_period_ends_when_game_clock_reaches_zero(state):
    state = ops.toggle_clock(ops.edit_game_clock(state, 0, 1))
    new, outcome = advance_clock(state, is_host=False)
    assert outcome.period_ended
    assert new.clock.game_time.is_zero
    assert not new.clock.game_running
    assert not new.clock.shot_clock_running
    # Period is not advanced automatically
    assert new.clock.period == 1


def test_host_violation_flips_possession(state):
    state = ops.toggle_clock(ops.edit_shot_clock(state, 1))
    new, outcome = advance_clock(state, is_host=True)
    assert outcome.violation
    assert new.clock.shot_clock == 0
    assert new.clock.possession == 'teamB'
    assert not new.clock.shot_clock_running
    assert new.clock.game_running


def test_viewer_never_flips_possession(state):
    state = ops.toggle_clock(ops.edit_shot_clock(state, 1))
    new, outcome = advance_clock(state, is_host=False)
    assert not outcome.violation
    assert outcome.shot_clock_expired
    assert new.clock.possession == 'teamA'
    assert not new.clock.shot_clock_running


def test_low_shot_clock_fires_once_at_five(state):
    state = ops.toggle_clock(ops.edit_shot_clock(state, 7))
    flags = []
    for _ in range(4):
        state, outcome = advance_clock(state, is_host=True)
        flags.append(outcome.low_shot_clock)
    assert flags == [False, True, False, False]


def test_deadline_recompute(state):
    state = ops.toggle_clock(state)
    state.clock.game_clock_deadline = 1000.0 + 720
    state.clock.shot_clock_deadline = 1000.0 + 24
    new, _ = advance_clock(state, is_host=True, now=1010.4)
    assert new.clock.game_time.as_tuple() == (11, 50)
    assert new.clock.shot_clock == 14
    assert recompute_from_deadlines(state, 1003.0).clock.shot_clock == 21
    stopped = ops.toggle_clock(state)
    assert recompute_from_deadlines(stopped, 2000.0) is stopped


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------
def test_twelve_minutes_twenty_four_ticks(store, host_session, host_tickers):
    """Start at 12:00 / 24, run 24 ticks: violation on the last one."""
    violations, disconnect = _collect(signals.shot_clock_violation, host_session)
    try:
        host_session.mutate('toggle_clock')
        host_tickers.tick(24)
    finally:
        disconnect()

    clock = host_session.replica.clock
    assert clock.game_time.as_tuple() == (11, 36)
    assert clock.shot_clock == 0
    assert clock.possession == 'teamB'
    assert clock.game_running
    assert not clock.shot_clock_running
    assert [v['possession'] for v in violations] == ['teamB']

    # The violation was persisted by the host
    doc = store.get(host_session.code)
    assert doc['gameState']['possession'] == 'teamB'
    assert doc['gameState']['shotClock'] == 0
    assert doc['gameState']['gameTime'] == {'minutes': 11, 'seconds': 36}
    # Game clock keeps running
    assert host_session.engine.running


def test_ticks_are_not_persisted_by_default(store, host_session, host_tickers):
    host_session.mutate('toggle_clock')
    host_tickers.tick(3)
    assert host_session.replica.clock.game_time.as_tuple() == (11, 57)
    assert store.get(host_session.code)['gameState']['gameTime'] == {'minutes': 12, 'seconds': 0}
    host_tickers.autosave()
    assert store.get(host_session.code)['gameState']['gameTime'] == {'minutes': 11, 'seconds': 57}


def test_engine_halts_at_end_of_period(store, host_session, host_tickers):
    ended, disconnect = _collect(signals.period_ended, host_session)
    try:
        host_session.mutate('edit_game_clock', 0, 2)
        host_session.mutate('toggle_clock')
        host_tickers.tick(5)
    finally:
        disconnect()
    assert [e['period'] for e in ended] == [1]
    assert not host_session.engine.running
    doc = store.get(host_session.code)
    assert doc['gameState']['gameTime'] == {'minutes': 0, 'seconds': 0}
    assert doc['gameState']['gameRunning'] is False


def test_viewer_waits_for_host_possession(store, host_session, viewer_session, viewer_tickers):
    host_session.mutate('edit_shot_clock', 2)
    host_session.mutate('toggle_clock')
    assert viewer_session.engine.running
    viewer_tickers.tick(2)
    assert viewer_session.replica.clock.shot_clock == 0
    assert viewer_session.replica.clock.possession == 'teamA'
    # Viewer never writes
    assert store.get(host_session.code)['gameState']['shotClock'] == 2


def test_restart_does_not_double_tick(host_session, host_tickers):
    host_session.mutate('toggle_clock')
    old = host_tickers.active(1)[0]
    host_session.engine.start()
    host_session.engine.start()
    assert len(host_tickers.active(1)) == 1
    # A late tick from the cancelled ticker is dropped
    old.callback()
    host_tickers.tick(1)
    assert host_session.replica.clock.game_time.as_tuple() == (11, 59)


def test_failed_violation_write_is_reported(host_session, host_tickers, store, monkeypatch):
    from scoreboard.services.sync import NetworkError

    host_session.mutate('edit_shot_clock', 1)
    host_session.mutate('toggle_clock')

    def broken_set(code, document):
        raise NetworkError('offline')

    monkeypatch.setattr(store, 'set', broken_set)
    failures, disconnect = _collect(signals.sync_failed, host_session)
    try:
        host_tickers.tick(1)
    finally:
        disconnect()
    # Local replica still advanced
    assert host_session.replica.clock.possession == 'teamB'
    assert [f['action'] for f in failures] == ['shot_clock_violation']


def test_deadline_mode_corrects_drift(store, game_config, fake_clock):
    host_tickers = TickerRegistry()
    host = ScoreboardSession.host(
        store, game_config, config=DeadlineSyncConfig, ticker_factory=host_tickers, clock=fake_clock
    )
    try:
        host.mutate('toggle_clock')
        doc = store.get(host.code)
        assert doc['gameState']['gameClockDeadline'] == fake_clock.now + 720
        assert doc['gameState']['shotClockDeadline'] == fake_clock.now + 24

        # One late tick after ten seconds catches up in one step
        fake_clock.advance(10)
        host_tickers.tick(1)
        assert host.replica.clock.game_time.as_tuple() == (11, 50)
        assert host.replica.clock.shot_clock == 14

        # A viewer joining later sees the same time
        viewer = ScoreboardSession.watch(
            store, host.code, config=DeadlineSyncConfig, ticker_factory=TickerRegistry(), clock=fake_clock
        )
        try:
            assert viewer.replica.clock.game_time.as_tuple() == (11, 50)
            assert viewer.replica.clock.shot_clock == 14
        finally:
            viewer.close()

        host.mutate('toggle_clock')
        doc = store.get(host.code)
        assert 'gameClockDeadline' not in doc['gameState']
        assert doc['gameState']['gameTime'] == {'minutes': 11, 'seconds': 50}
    finally:
        host.close()


def test_thread_ticker_fires_until_cancelled():
    fired = threading.Event()
    calls = []

    def callback():
        calls.append(1)
        fired.set()

    ticker = ThreadTicker(0.01, callback)
    ticker.start()
    assert fired.wait(2.0)
    ticker.cancel()
    ticker._thread.join(2.0)
    assert not ticker._thread.is_alive()
    assert calls


def test_deadline_jump_past_five_still_warns(state):
    state = ops.toggle_clock(ops.edit_shot_clock(state, 6))
    state.clock.shot_clock_deadline = 1000.0 + 6
    new, outcome = advance_clock(state, is_host=True, now=1002.0)
    assert new.clock.shot_clock == 4
    assert outcome.low_shot_clock


def test_close_joins_ticker_threads(store, game_config):
    class FastTickConfig(SyncTestConfig):
        TICK_INTERVAL_SEC = 0.01

    tickers = []

    def factory(interval, callback):
        ticker = ThreadTicker(interval, callback)
        tickers.append(ticker)
        return ticker

    host = ScoreboardSession.host(store, game_config, config=FastTickConfig, ticker_factory=factory)
    host.mutate('toggle_clock')
    host.mutate('toggle_clock')
    host.mutate('toggle_clock')
    host.close(timeout=2.0)
    assert len(tickers) >= 3
    assert not any(t.is_alive() for t in tickers)
