"""Session context: one client's view of one scoreboard document.

``ScoreboardSession`` threads the store, the replica, the clock engine, the
reconciliation listener and the host autosave together. A process may hold
several sessions; nothing here is module-global.
"""

from __future__ import annotations

import enum
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import Config

from . import signals
from .clock import ClockEngine, ThreadTicker, TickerFactory
from .errors import NetworkError, NotFoundError, ScoreboardError, ValidationError
from .listener import ReconciliationListener
from .mutations import MutationAPI
from .state import (
    GAME_TYPES,
    MAX_SHOT_CLOCK,
    ClockState,
    GameState,
    GameTime,
    Player,
    PlayerStats,
    Settings,
    Team,
    to_int,
)
from .store import RemoteStore, Unsubscribe


logger = logging.getLogger(__name__)

CLOCK_MODES = ('counter', 'deadline')


class Role(enum.Enum):
    HOST = 'host'
    VIEWER = 'viewer'


def generate_session_code(exists: Callable[[str], bool], rng: Optional[random.Random] = None) -> str:
    """Generate an unused 6-digit session code."""
    rng = rng or random
    while True:
        code = str(rng.randint(100000, 999999))
        if not exists(code):
            return code


def is_valid_code(code: Any) -> bool:
    return isinstance(code, str) and len(code) == 6 and code.isdigit()


@dataclass
class SessionConfig:
    """Game configuration gathered before a session is created."""

    game_name: str = 'Basketball Game'
    period_duration: int = 12
    shot_clock_duration: int = 24
    timeouts_per_team: int = 7
    team_a_name: str = 'Team A'
    team_b_name: str = 'Team B'
    team_a_color: str = '#FF6B35'
    team_b_color: str = '#1B263B'
    game_type: str = 'friendly'
    team_a_roster: List[Dict[str, Any]] = field(default_factory=list)
    team_b_roster: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionConfig':
        """Build from a camelCase form payload (``periodDuration``, ``teamAName``, ...)."""
        keys = {
            'gameName': 'game_name',
            'periodDuration': 'period_duration',
            'shotClockDuration': 'shot_clock_duration',
            'timeoutsPerTeam': 'timeouts_per_team',
            'teamAName': 'team_a_name',
            'teamBName': 'team_b_name',
            'teamAColor': 'team_a_color',
            'teamBColor': 'team_b_color',
            'gameType': 'game_type',
            'teamARoster': 'team_a_roster',
            'teamBRoster': 'team_b_roster',
        }
        values = {attr: data[key] for key, attr in keys.items() if data.get(key) is not None}
        return cls(**values)

    def validate(self) -> None:
        for name in ('period_duration', 'shot_clock_duration', 'timeouts_per_team'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer")
        for name in ('game_name', 'team_a_name', 'team_b_name', 'team_a_color', 'team_b_color'):
            if not isinstance(getattr(self, name), str):
                raise ValidationError(f"{name} must be a string")
        if self.period_duration < 1:
            raise ValidationError('Period duration must be at least 1 minute')
        if not 0 <= self.shot_clock_duration <= MAX_SHOT_CLOCK:
            raise ValidationError(f"Shot clock: 0-{MAX_SHOT_CLOCK} seconds (0 = disabled)")
        if self.timeouts_per_team < 0:
            raise ValidationError('Timeouts per team must not be negative')
        if not self.game_name.strip():
            raise ValidationError('Game name required')
        if self.team_a_name.strip() == self.team_b_name.strip():
            raise ValidationError('Team names must be different')
        if self.team_a_color.lower() == self.team_b_color.lower():
            raise ValidationError('Team colors must be different')
        if self.game_type not in GAME_TYPES:
            raise ValidationError(f"Game type must be one of {', '.join(GAME_TYPES)}")
        self._roster_entries(self.team_a_roster, 'teamA')
        self._roster_entries(self.team_b_roster, 'teamB')

    @staticmethod
    def _roster_entries(roster: Any, team: str) -> List[Tuple[int, str, str]]:
        """Normalize roster form entries to (number, name, position)."""
        if not isinstance(roster, list):
            raise ValidationError(f"{team} roster must be a list")
        entries = []
        for entry in roster:
            if not isinstance(entry, dict):
                raise ValidationError(f"{team} roster entries must be objects with a number and a name")
            number = to_int(entry.get('number'), 'Jersey number')
            name = entry.get('name')
            if not isinstance(name, str) or not name.strip():
                raise ValidationError('Player name required')
            position = entry.get('position') or ''
            if not isinstance(position, str):
                raise ValidationError('Player position must be text')
            entries.append((number, name.strip(), position))
        return entries

    def build_state(self, code: str, now_ms: int) -> GameState:
        """Initial document: scores 0, clocks from the configured durations, both clocks stopped."""
        self.validate()
        settings = Settings(
            game_name=self.game_name.strip(),
            period_duration=self.period_duration,
            shot_clock_duration=self.shot_clock_duration,
            timeouts_per_team=self.timeouts_per_team,
        )
        team_a = Team(name=self.team_a_name.strip(), color=self.team_a_color, timeouts=self.timeouts_per_team)
        team_b = Team(name=self.team_b_name.strip(), color=self.team_b_color, timeouts=self.timeouts_per_team)
        for team, roster, key in ((team_a, self.team_a_roster, 'teamA'), (team_b, self.team_b_roster, 'teamB')):
            for number, name, position in self._roster_entries(roster, key):
                team.check_new_player(number, name)
                team.roster.append(Player(number=number, name=name, position=position))
                team.stats[number] = PlayerStats()
        clock = ClockState(
            period=1,
            game_time=GameTime(minutes=self.period_duration, seconds=0),
            shot_clock=self.shot_clock_duration,
            possession='teamA',
        )
        return GameState(
            code=code,
            game_type=self.game_type,
            settings=settings,
            team_a=team_a,
            team_b=team_b,
            clock=clock,
            last_update=now_ms,
        )


def _persist_new_state(store: RemoteStore, config: SessionConfig, *, rng: Optional[random.Random] = None,
                       clock: Callable[[], float] = time.time) -> GameState:
    config.validate()
    code = generate_session_code(lambda c: store.get(c) is not None, rng=rng)
    state = config.build_state(code, int(clock() * 1000))
    store.set(code, state.to_dict())
    logger.info(f"[create] session={code} game={state.settings.game_name!r}")
    return state


def create_session(store: RemoteStore, config: SessionConfig, *, rng: Optional[random.Random] = None,
                   clock: Callable[[], float] = time.time) -> str:
    """Build the initial document under a fresh code, persist it and return the code.

    Raises ValidationError for a bad config and NetworkError if the write fails.
    """
    return _persist_new_state(store, config, rng=rng, clock=clock).code


def join_session(store: RemoteStore, code: str) -> GameState:
    """One-shot read of a session before subscribing to it."""
    if not is_valid_code(code):
        raise ValidationError('Enter a valid 6-digit code')
    document = store.get(code)
    if document is None:
        raise NotFoundError(code)
    return GameState.from_dict(document)


class ScoreboardSession:
    """One client's synchronized view of a session.

    Ticks, snapshots and mutations all take ``lock`` while they touch the
    replica, so a tick and an incoming snapshot never interleave mid-update.
    Store I/O happens outside the lock.
    """

    def __init__(
        self,
        store: RemoteStore,
        code: str,
        role: Role = Role.VIEWER,
        *,
        config=Config,
        ticker_factory: TickerFactory = ThreadTicker,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.code = code
        self.role = role
        self.replica: Optional[GameState] = None
        self.ended = False
        self.lock = threading.RLock()
        self._clock = clock
        self._ticker_factory = ticker_factory
        self._update_callbacks: List[Callable[[GameState], None]] = []
        self._autosave = None

        self.clock_mode = getattr(config, 'CLOCK_MODE', 'counter')
        if self.clock_mode not in CLOCK_MODES:
            raise ValidationError(f"CLOCK_MODE must be one of {', '.join(CLOCK_MODES)}")
        self.autosave_interval = float(getattr(config, 'AUTOSAVE_INTERVAL_SEC', 30))
        self.engine = ClockEngine(
            self,
            interval=float(getattr(config, 'TICK_INTERVAL_SEC', 1)),
            ticker_factory=ticker_factory,
        )
        self.listener = ReconciliationListener(self)
        self.mutations = MutationAPI(self)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def host(cls, store: RemoteStore, game_config: SessionConfig, **kwargs) -> 'ScoreboardSession':
        """Create a new session and open it as its host."""
        clock = kwargs.get('clock', time.time)
        state = _persist_new_state(store, game_config, clock=clock)
        session = cls(store, state.code, Role.HOST, **kwargs)
        session.replica = state
        session.open()
        return session

    @classmethod
    def watch(cls, store: RemoteStore, code: str, **kwargs) -> 'ScoreboardSession':
        """Open an existing session as a read-only viewer."""
        session = cls(store, code, Role.VIEWER, **kwargs)
        session.open()
        return session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_host(self) -> bool:
        return self.role is Role.HOST

    @property
    def deadline_mode(self) -> bool:
        return self.clock_mode == 'deadline'

    def now(self) -> float:
        return self._clock()

    def open(self) -> 'ScoreboardSession':
        if self.replica is None:
            self.replica = join_session(self.store, self.code)
        if self.deadline_mode:
            logger.info(f"[clock-mode] session={self.code} deadline clocks enabled")
        self.listener.start()
        if self.ended:
            return self
        self.engine.sync_with_flags()
        if self.is_host:
            self.start_autosave()
        return self

    def close(self, timeout: float = 1.0) -> None:
        """Release the subscription, cancel every timer and wait for its thread to exit."""
        self.listener.stop()
        self.engine.stop()
        autosave = self._autosave
        self.stop_autosave()
        self.engine.join(timeout)
        if autosave is not None:
            autosave.join(timeout)
        logger.info(f"[close] session={self.code}")

    def __enter__(self) -> 'ScoreboardSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Presentation hooks
    # ------------------------------------------------------------------
    def subscribe(self, on_update: Callable[[GameState], None]) -> Unsubscribe:
        """Call ``on_update`` with the replica after every applied snapshot."""
        self._update_callbacks.append(on_update)

        def unsubscribe() -> None:
            if on_update in self._update_callbacks:
                self._update_callbacks.remove(on_update)

        return unsubscribe

    def notify_update(self, state: GameState) -> None:
        for callback in list(self._update_callbacks):
            callback(state)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def mutate(self, operation: str, *args, **kwargs) -> bool:
        """Apply a host operation and persist it. See ``MutationAPI.apply``."""
        return self.mutations.apply(operation, *args, **kwargs)

    def persist(self, action: str = 'save') -> bool:
        """Write the full replica.

        Store failures, transient or a refusal, are logged and signalled
        through ``sync_failed`` instead of raised. Returns False when nothing
        was written, including once the session has ended.
        """
        with self.lock:
            if self.ended or self.replica is None:
                return False
            self.replica.last_update = max(self.replica.last_update, int(self.now() * 1000))
            document = self.replica.to_dict()
        try:
            self.store.set(self.code, document)
        except NetworkError as exc:
            logger.warning(f"[sync-failed] session={self.code} action={action} error={exc}")
            signals.sync_failed.send(self, error=exc, action=action)
            return False
        except ScoreboardError as exc:
            logger.error(f"[sync-refused] session={self.code} action={action} error={exc!r}")
            signals.sync_failed.send(self, error=exc, action=action)
            return False
        return True

    def autosave(self) -> bool:
        if not self.is_host:
            return False
        return self.persist('autosave')

    def start_autosave(self) -> None:
        if not self.is_host:
            return
        self.stop_autosave()
        self._autosave = self._ticker_factory(self.autosave_interval, self.autosave)
        self._autosave.start()

    def stop_autosave(self) -> None:
        autosave, self._autosave = self._autosave, None
        if autosave is not None:
            autosave.cancel()

    @property
    def autosave_active(self) -> bool:
        return self._autosave is not None
