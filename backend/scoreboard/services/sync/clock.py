"""Local clock engine.

One repeating tick per session advances the game clock and the shot clock of
the local replica between snapshots, so clients do not need a store write per
second. Only the host persists the transitions a tick can cause (period end,
shot clock violation); viewers wait for the host's authoritative write.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Tuple

from . import signals
from .mutations import remaining_seconds
from .state import GameState, GameTime, other_team


logger = logging.getLogger(__name__)


class Ticker(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...

    def join(self, timeout: Optional[float] = None) -> None: ...

    def is_alive(self) -> bool: ...


TickerFactory = Callable[[float, Callable[[], None]], Ticker]


class ThreadTicker:
    """Call ``callback`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name='scoreboard-ticker', daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: Optional[float] = None) -> None:
        # A tick that stops its own engine runs on this thread
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception('[tick-error] tick callback raised; ticker keeps running')


@dataclass
class TickOutcome:
    low_shot_clock: bool = False
    violation: bool = False
    period_ended: bool = False
    # Viewer reached 0 on its own and stopped; the host decides possession
    shot_clock_expired: bool = False

    @property
    def needs_persist(self) -> bool:
        return self.violation or self.period_ended


def advance_clock(state: GameState, *, is_host: bool, now: Optional[float] = None) -> Tuple[GameState, TickOutcome]:
    """Advance both clocks by one tick.

    With ``now`` given, running clocks that carry a deadline are recomputed
    from it instead of decremented. Counters never go below zero.
    """
    new = state.copy()
    clock = new.clock
    outcome = TickOutcome()

    if clock.game_running:
        if now is not None and clock.game_clock_deadline is not None:
            clock.game_time = GameTime.from_seconds(remaining_seconds(clock.game_clock_deadline, now))
        elif clock.game_time.seconds > 0:
            clock.game_time.seconds -= 1
        elif clock.game_time.minutes > 0:
            clock.game_time.minutes -= 1
            clock.game_time.seconds = 59
        if clock.game_time.is_zero:
            clock.game_running = False
            clock.shot_clock_running = False
            clock.game_clock_deadline = None
            clock.shot_clock_deadline = None
            outcome.period_ended = True

    if clock.shot_clock_running and new.settings.shot_clock_enabled:
        previous = clock.shot_clock
        if now is not None and clock.shot_clock_deadline is not None:
            clock.shot_clock = remaining_seconds(clock.shot_clock_deadline, now)
        else:
            clock.shot_clock = max(0, clock.shot_clock - 1)
        if previous > 5 >= clock.shot_clock:
            outcome.low_shot_clock = True
        if clock.shot_clock == 0:
            clock.shot_clock_running = False
            clock.shot_clock_deadline = None
            if is_host:
                clock.possession = other_team(clock.possession)
                outcome.violation = True
            else:
                outcome.shot_clock_expired = True
    elif clock.shot_clock_running:
        clock.shot_clock_running = False

    return new, outcome


def recompute_from_deadlines(state: GameState, now: float) -> GameState:
    """Return ``state`` with running clocks set from their deadlines."""
    clock = state.clock
    if not (clock.game_running and clock.game_clock_deadline is not None) and not (
        clock.shot_clock_running and clock.shot_clock_deadline is not None
    ):
        return state
    new = state.copy()
    if new.clock.game_running and new.clock.game_clock_deadline is not None:
        new.clock.game_time = GameTime.from_seconds(remaining_seconds(new.clock.game_clock_deadline, now))
    if new.clock.shot_clock_running and new.clock.shot_clock_deadline is not None:
        new.clock.shot_clock = remaining_seconds(new.clock.shot_clock_deadline, now)
    return new


class ClockEngine:
    """Single repeating tick for one session.

    ``start`` is restart-safe: it cancels any previous ticker first, and ticks
    from a cancelled ticker are dropped by generation, so the replica is never
    advanced twice per interval.
    """

    def __init__(self, session, *, interval: float = 1.0, ticker_factory: TickerFactory = ThreadTicker):
        self.session = session
        self.interval = interval
        self.ticker_factory = ticker_factory
        self._ticker: Optional[Ticker] = None
        self._retired: List[Ticker] = []
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._ticker is not None

    def start(self) -> None:
        with self.session.lock:
            self._cancel()
            self._generation += 1
            generation = self._generation
            self._ticker = self.ticker_factory(self.interval, lambda: self.tick(generation))
            self._ticker.start()
        logger.info(f"[clock-start] session={self.session.code} generation={generation}")

    def stop(self) -> None:
        with self.session.lock:
            was_running = self._cancel()
        if was_running:
            logger.info(f"[clock-stop] session={self.session.code}")

    def sync_with_flags(self) -> None:
        """Start or stop the engine to match the replica's run-flags."""
        with self.session.lock:
            state = self.session.replica
            should_run = state is not None and state.clock.any_running
            if should_run and not self.running:
                self.start()
            elif not should_run and self.running:
                self.stop()

    def _cancel(self) -> bool:
        if self._ticker is None:
            return False
        self._ticker.cancel()
        self._retired = [t for t in self._retired if t.is_alive()]
        self._retired.append(self._ticker)
        self._ticker = None
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for cancelled tickers to finish their last callback."""
        with self.session.lock:
            retired, self._retired = self._retired, []
        for ticker in retired:
            ticker.join(timeout)

    def tick(self, generation: Optional[int] = None) -> TickOutcome:
        """Advance the replica by one tick and emit the resulting signals.

        ``generation`` identifies the ticker that fired; ticks from a cancelled
        ticker are dropped.
        """
        session = self.session
        with session.lock:
            if generation is not None and (generation != self._generation or self._ticker is None):
                return TickOutcome()
            state = session.replica
            if state is None:
                self._cancel()
                return TickOutcome()
            now = session.now() if session.deadline_mode else None
            new, outcome = advance_clock(state, is_host=session.is_host, now=now)
            session.replica = new
            if not new.clock.any_running:
                # Halt when nothing is left to advance
                self._cancel()
                logger.info(f"[clock-halt] session={session.code} at {new.clock.game_time} shot={new.clock.shot_clock}")

        signals.clock_ticked.send(session, state=new)
        if outcome.low_shot_clock:
            signals.low_shot_clock.send(session, state=new)
        if outcome.period_ended:
            logger.info(f"[period-end] session={session.code} period={new.clock.period}")
            signals.period_ended.send(session, state=new, period=new.clock.period)
        if outcome.violation:
            logger.info(f"[violation] session={session.code} possession={new.clock.possession}")
            signals.shot_clock_violation.send(session, state=new, possession=new.clock.possession)

        if outcome.needs_persist and session.is_host:
            action = 'shot_clock_violation' if outcome.violation else 'period_end'
            # Store failures are logged and signalled by persist
            session.persist(action)
        return outcome
