"""Host-only mutation API.

Each operation is a pure transition ``op(state, *args) -> new GameState``: it
validates and clamps its input, raises ``ValidationError`` before touching
anything, and never modifies the state it was given. ``MutationAPI`` applies
an operation to a session's replica and persists the full document.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Callable, Dict, Tuple

from .errors import AuthorityViolation, NotFoundError, ValidationError
from .state import (
    MAX_SHOT_CLOCK,
    SCORING_STATS,
    STAT_KINDS,
    GameState,
    GameTime,
    Player,
    PlayerStats,
    to_int,
)


logger = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _require_shot_clock(state: GameState) -> None:
    if not state.settings.shot_clock_enabled:
        raise ValidationError('Shot clock is disabled for this game')


# ----------------------------------------------------------------------
# Clock operations
# ----------------------------------------------------------------------
def toggle_clock(state: GameState) -> GameState:
    """Pause both clocks if either runs, otherwise start them."""
    new = state.copy()
    clock = new.clock
    if clock.any_running:
        clock.game_running = False
        clock.shot_clock_running = False
    else:
        clock.game_running = True
        clock.shot_clock_running = new.settings.shot_clock_enabled and clock.shot_clock > 0
    return new


def reset_clocks(state: GameState) -> GameState:
    new = state.copy()
    new.clock.game_time = GameTime(minutes=new.settings.period_duration, seconds=0)
    if new.settings.shot_clock_enabled:
        new.clock.shot_clock = new.settings.shot_clock_duration
    new.clock.game_running = False
    new.clock.shot_clock_running = False
    return new


def reset_shot_clock_to(state: GameState, value: Any) -> GameState:
    """Set the shot clock (e.g. 24 or 14) without changing whether it runs."""
    _require_shot_clock(state)
    seconds = _clamp(to_int(value, 'value'), 0, MAX_SHOT_CLOCK)
    new = state.copy()
    new.clock.shot_clock = seconds
    if seconds == 0:
        new.clock.shot_clock_running = False
    return new


def start_shot_clock_only(state: GameState) -> GameState:
    _require_shot_clock(state)
    if state.clock.shot_clock <= 0:
        raise ValidationError('Reset shot clock first')
    new = state.copy()
    new.clock.shot_clock_running = True
    return new


def edit_game_clock(state: GameState, minutes: Any, seconds: Any) -> GameState:
    new = state.copy()
    new.clock.game_time = GameTime(
        minutes=max(0, to_int(minutes, 'minutes')),
        seconds=_clamp(to_int(seconds, 'seconds'), 0, 59),
    )
    if new.clock.game_time.is_zero:
        new.clock.game_running = False
        new.clock.shot_clock_running = False
    return new


def edit_shot_clock(state: GameState, seconds: Any) -> GameState:
    _require_shot_clock(state)
    value = _clamp(to_int(seconds, 'seconds'), 0, MAX_SHOT_CLOCK)
    new = state.copy()
    new.clock.shot_clock = value
    if value == 0:
        new.clock.shot_clock_running = False
    return new


def advance_period(state: GameState) -> GameState:
    new = reset_clocks(state)
    new.clock.period += 1
    return new


# ----------------------------------------------------------------------
# Score, possession and team counters
# ----------------------------------------------------------------------
def adjust_score(state: GameState, team: str, delta: Any) -> GameState:
    new = state.copy()
    side = new.team(team)
    side.score = max(0, side.score + to_int(delta, 'delta'))
    return new


def set_possession(state: GameState, team: str) -> GameState:
    state.team(team)
    new = state.copy()
    new.clock.possession = team
    return new


def adjust_timeouts(state: GameState, team: str, delta: Any) -> GameState:
    new = state.copy()
    side = new.team(team)
    side.timeouts = _clamp(side.timeouts + to_int(delta, 'delta'), 0, new.settings.timeouts_per_team)
    return new


def adjust_fouls(state: GameState, team: str, delta: Any) -> GameState:
    new = state.copy()
    side = new.team(team)
    side.fouls = max(0, side.fouls + to_int(delta, 'delta'))
    return new


def record_stat(state: GameState, team: str, player: Any, stat_kind: str) -> GameState:
    """Count one stat for a player; scoring stats also add to the team score."""
    if stat_kind not in STAT_KINDS:
        raise ValidationError(f"Unknown stat {stat_kind!r}")
    number = to_int(player, 'player')
    new = state.copy()
    side = new.team(team)
    if side.find_player(number) is None and number not in side.stats:
        raise ValidationError(f"#{number} is not on the {team} roster")
    stats = side.stats.setdefault(number, PlayerStats())
    stats.increment(stat_kind)
    points = SCORING_STATS.get(stat_kind, 0)
    if points:
        stats.increment('totalPoints', points)
        side.score += points
    return new


# ----------------------------------------------------------------------
# Roster
# ----------------------------------------------------------------------
def add_player(state: GameState, team: str, number: Any, name: str, position: str = '') -> GameState:
    new = state.copy()
    side = new.team(team)
    number = to_int(number, 'number')
    side.check_new_player(number, name)
    side.roster.append(Player(number=number, name=str(name).strip(), position=position or ''))
    side.stats.setdefault(number, PlayerStats())
    return new


def remove_player(state: GameState, team: str, number: Any) -> GameState:
    """Drop a player from the roster; their stats stay for the box score."""
    new = state.copy()
    side = new.team(team)
    number = to_int(number, 'number')
    player = side.find_player(number)
    if player is None:
        raise ValidationError(f"#{number} is not on the {team} roster")
    side.roster.remove(player)
    return new


OPERATIONS: Dict[str, Callable[..., GameState]] = {
    'toggle_clock': toggle_clock,
    'reset_clocks': reset_clocks,
    'reset_shot_clock_to': reset_shot_clock_to,
    'start_shot_clock_only': start_shot_clock_only,
    'adjust_score': adjust_score,
    'record_stat': record_stat,
    'set_possession': set_possession,
    'advance_period': advance_period,
    'edit_game_clock': edit_game_clock,
    'edit_shot_clock': edit_shot_clock,
    'adjust_timeouts': adjust_timeouts,
    'adjust_fouls': adjust_fouls,
    'add_player': add_player,
    'remove_player': remove_player,
}


def _camel(name: str) -> str:
    return re.sub(r'_([a-z])', lambda m: m.group(1).upper(), name)


_ALIASES = {_camel(name): name for name in OPERATIONS}


def resolve_operation(operation: str) -> Tuple[str, Callable[..., GameState]]:
    """Map a snake_case or camelCase operation name to its transition."""
    name = _ALIASES.get(operation, operation)
    if name not in OPERATIONS:
        raise ValidationError(f"Unknown operation {operation!r}")
    return name, OPERATIONS[name]


def remaining_seconds(deadline: float, now: float) -> int:
    return max(0, math.ceil(deadline - now))


def sync_deadlines(before: GameState, after: GameState, now: float) -> None:
    """Stamp or clear clock deadlines on ``after`` for deadline clock mode.

    A clock that starts, or whose value was edited while running, gets a fresh
    deadline; a stopped clock has none; an untouched running clock keeps its own.
    """
    b, a = before.clock, after.clock
    if not a.game_running:
        a.game_clock_deadline = None
    elif not b.game_running or a.game_time != b.game_time or a.game_clock_deadline is None:
        a.game_clock_deadline = now + a.game_time.total_seconds
    if not a.shot_clock_running:
        a.shot_clock_deadline = None
    elif not b.shot_clock_running or a.shot_clock != b.shot_clock or a.shot_clock_deadline is None:
        a.shot_clock_deadline = now + a.shot_clock


class MutationAPI:
    """Applies named operations to a session replica, then persists it."""

    def __init__(self, session):
        self.session = session

    def apply(self, operation: str, *args, **kwargs) -> bool:
        """Run one operation. Returns False when the write failed transiently.

        Raises AuthorityViolation on viewers, ValidationError for bad input and
        NotFoundError once the session has ended; in all cases nothing is
        changed or written.
        """
        session = self.session
        name, transition = resolve_operation(operation)
        if not session.is_host:
            logger.warning(f"[mutate-denied] session={session.code} op={name} role={session.role.value}")
            raise AuthorityViolation(f"Only the host may {name}")

        with session.lock:
            before = session.replica
            if session.ended or before is None:
                logger.warning(f"[mutate-denied] session={session.code} op={name} session ended")
                raise NotFoundError(session.code)
            after = transition(before, *args, **kwargs)
            if session.deadline_mode:
                sync_deadlines(before, after, session.now())
            session.replica = after
            session.engine.sync_with_flags()
        logger.info(f"[mutate] session={session.code} op={name} args={args or kwargs}")
        return session.persist(name)
