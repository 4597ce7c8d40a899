"""GameState: the single replicated scoreboard document.

The in-memory form is a tree of dataclasses; ``to_dict``/``from_dict`` map it
to the plain key/value document persisted by the store (camelCase keys, stats
maps keyed by the jersey number as a string).
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ValidationError


TEAMS = ('teamA', 'teamB')
GAME_TYPES = ('friendly', 'full')
MAX_ROSTER_SIZE = 15
MAX_JERSEY_NUMBER = 99
MAX_SHOT_CLOCK = 60

# Points credited to the player and team for each scoring stat
SCORING_STATS = {'freeThrows': 1, 'fieldGoals': 2, 'threePointers': 3}
COUNTING_STATS = (
    'offensiveRebounds',
    'defensiveRebounds',
    'assists',
    'steals',
    'blocks',
    'turnovers',
    'fouls',
)
STAT_KINDS = tuple(SCORING_STATS) + COUNTING_STATS

_STAT_FIELDS = (
    ('free_throws', 'freeThrows'),
    ('field_goals', 'fieldGoals'),
    ('three_pointers', 'threePointers'),
    ('offensive_rebounds', 'offensiveRebounds'),
    ('defensive_rebounds', 'defensiveRebounds'),
    ('assists', 'assists'),
    ('steals', 'steals'),
    ('blocks', 'blocks'),
    ('turnovers', 'turnovers'),
    ('fouls', 'fouls'),
    ('minutes', 'minutes'),
    ('total_points', 'totalPoints'),
)
_ATTR_BY_KEY = {key: attr for attr, key in _STAT_FIELDS}


def other_team(team: str) -> str:
    return 'teamB' if team == 'teamA' else 'teamA'


def _field(data: Dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict):
        raise ValidationError(f"{where} must be an object")
    if key not in data:
        raise ValidationError(f"{where}.{key} is required")
    return data[key]


def _as_int(value: Any, where: str) -> int:
    # bool is an int subclass; a flag in a counter slot is a malformed document
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{where} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{where} must be an integer")
    return int(value)


def _as_bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{where} must be a boolean")
    return value


def _as_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{where} must be a string")
    return value


def _as_deadline(value: Any, where: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{where} must be a timestamp")
    return float(value)


def to_int(value: Any, name: str) -> int:
    """Accept an int or a digit string (form input); anything else is a ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r'\s*-?\d+\s*', value):
        return int(value)
    raise ValidationError(f"{name} must be an integer")


@dataclass
class Settings:
    game_name: str = 'Basketball Game'
    period_duration: int = 12
    shot_clock_duration: int = 24
    timeouts_per_team: int = 7

    @property
    def shot_clock_enabled(self) -> bool:
        return self.shot_clock_duration > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'gameName': self.game_name,
            'periodDuration': self.period_duration,
            'shotClockDuration': self.shot_clock_duration,
            'timeoutsPerTeam': self.timeouts_per_team,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        return cls(
            game_name=_as_str(_field(data, 'gameName', 'settings'), 'settings.gameName'),
            period_duration=_as_int(_field(data, 'periodDuration', 'settings'), 'settings.periodDuration'),
            shot_clock_duration=_as_int(_field(data, 'shotClockDuration', 'settings'), 'settings.shotClockDuration'),
            timeouts_per_team=_as_int(_field(data, 'timeoutsPerTeam', 'settings'), 'settings.timeoutsPerTeam'),
        )


@dataclass
class Player:
    number: int
    name: str
    position: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {'number': self.number, 'name': self.name, 'position': self.position}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str) -> 'Player':
        return cls(
            number=_as_int(_field(data, 'number', where), f"{where}.number"),
            name=_as_str(_field(data, 'name', where), f"{where}.name"),
            position=_as_str(data.get('position') or '', f"{where}.position"),
        )


@dataclass
class PlayerStats:
    free_throws: int = 0
    field_goals: int = 0
    three_pointers: int = 0
    offensive_rebounds: int = 0
    defensive_rebounds: int = 0
    assists: int = 0
    steals: int = 0
    blocks: int = 0
    turnovers: int = 0
    fouls: int = 0
    minutes: int = 0
    total_points: int = 0

    def get(self, stat_kind: str) -> int:
        return getattr(self, _ATTR_BY_KEY[stat_kind])

    def increment(self, stat_kind: str, amount: int = 1) -> None:
        attr = _ATTR_BY_KEY[stat_kind]
        setattr(self, attr, getattr(self, attr) + amount)

    def to_dict(self) -> Dict[str, int]:
        return {key: getattr(self, attr) for attr, key in _STAT_FIELDS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str) -> 'PlayerStats':
        if not isinstance(data, dict):
            raise ValidationError(f"{where} must be an object")
        # Counters missing from older documents default to zero
        values = {
            attr: _as_int(data.get(key, 0), f"{where}.{key}")
            for attr, key in _STAT_FIELDS
        }
        return cls(**values)


@dataclass
class Team:
    name: str
    color: str
    score: int = 0
    timeouts: int = 7
    fouls: int = 0
    roster: List[Player] = field(default_factory=list)
    stats: Dict[int, PlayerStats] = field(default_factory=dict)

    def find_player(self, number: int) -> Optional[Player]:
        for player in self.roster:
            if player.number == number:
                return player
        return None

    def check_new_player(self, number: int, name: str) -> None:
        """Raise ValidationError unless (number, name) may join the roster."""
        if isinstance(number, bool) or not isinstance(number, int):
            raise ValidationError('Jersey number must be an integer')
        if number < 0 or number > MAX_JERSEY_NUMBER:
            raise ValidationError(f"Jersey #: 0-{MAX_JERSEY_NUMBER}")
        if not name or not str(name).strip():
            raise ValidationError('Player name required')
        if len(self.roster) >= MAX_ROSTER_SIZE:
            raise ValidationError(f"Max {MAX_ROSTER_SIZE} players per team")
        if self.find_player(number) is not None:
            raise ValidationError(f"#{number} already taken")

    def top_scorer(self) -> Optional[Dict[str, Any]]:
        """Return the player with the most points, or None if nobody scored."""
        best = None
        for number, stats in self.stats.items():
            if stats.total_points > (best['points'] if best else 0):
                player = self.find_player(number)
                best = {
                    'number': number,
                    'name': player.name if player else f"#{number}",
                    'points': stats.total_points,
                }
        return best

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'color': self.color,
            'score': self.score,
            'timeouts': self.timeouts,
            'fouls': self.fouls,
            'roster': [p.to_dict() for p in self.roster],
            'stats': {str(number): s.to_dict() for number, s in self.stats.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str) -> 'Team':
        roster_raw = _field(data, 'roster', where)
        if not isinstance(roster_raw, list):
            raise ValidationError(f"{where}.roster must be a list")
        stats_raw = data.get('stats') or {}
        if not isinstance(stats_raw, dict):
            raise ValidationError(f"{where}.stats must be an object")
        stats: Dict[int, PlayerStats] = {}
        for key, value in stats_raw.items():
            try:
                number = int(key)
            except (TypeError, ValueError):
                raise ValidationError(f"{where}.stats key {key!r} is not a jersey number") from None
            stats[number] = PlayerStats.from_dict(value, f"{where}.stats.{key}")
        return cls(
            name=_as_str(_field(data, 'name', where), f"{where}.name"),
            color=_as_str(_field(data, 'color', where), f"{where}.color"),
            score=_as_int(_field(data, 'score', where), f"{where}.score"),
            timeouts=_as_int(_field(data, 'timeouts', where), f"{where}.timeouts"),
            fouls=_as_int(_field(data, 'fouls', where), f"{where}.fouls"),
            roster=[Player.from_dict(p, f"{where}.roster[{i}]") for i, p in enumerate(roster_raw)],
            stats=stats,
        )


@dataclass
class GameTime:
    minutes: int = 12
    seconds: int = 0

    @property
    def total_seconds(self) -> int:
        return self.minutes * 60 + self.seconds

    @property
    def is_zero(self) -> bool:
        return self.minutes == 0 and self.seconds == 0

    @classmethod
    def from_seconds(cls, total: int) -> 'GameTime':
        minutes, seconds = divmod(max(0, int(total)), 60)
        return cls(minutes=minutes, seconds=seconds)

    def as_tuple(self):
        return (self.minutes, self.seconds)

    def __str__(self) -> str:
        return f"{self.minutes:02d}:{self.seconds:02d}"


@dataclass
class ClockState:
    """The ``gameState`` section: period, clocks, possession and run-flags."""

    period: int = 1
    game_time: GameTime = field(default_factory=GameTime)
    shot_clock: int = 24
    possession: str = 'teamA'
    game_running: bool = False
    shot_clock_running: bool = False
    # Only set while a clock runs in deadline mode
    game_clock_deadline: Optional[float] = None
    shot_clock_deadline: Optional[float] = None

    @property
    def any_running(self) -> bool:
        return self.game_running or self.shot_clock_running

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'period': self.period,
            'gameTime': {'minutes': self.game_time.minutes, 'seconds': self.game_time.seconds},
            'shotClock': self.shot_clock,
            'possession': self.possession,
            'gameRunning': self.game_running,
            'shotClockRunning': self.shot_clock_running,
        }
        if self.game_clock_deadline is not None:
            data['gameClockDeadline'] = self.game_clock_deadline
        if self.shot_clock_deadline is not None:
            data['shotClockDeadline'] = self.shot_clock_deadline
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClockState':
        game_time = _field(data, 'gameTime', 'gameState')
        return cls(
            period=_as_int(_field(data, 'period', 'gameState'), 'gameState.period'),
            game_time=GameTime(
                minutes=_as_int(_field(game_time, 'minutes', 'gameState.gameTime'), 'gameState.gameTime.minutes'),
                seconds=_as_int(_field(game_time, 'seconds', 'gameState.gameTime'), 'gameState.gameTime.seconds'),
            ),
            shot_clock=_as_int(_field(data, 'shotClock', 'gameState'), 'gameState.shotClock'),
            possession=_as_str(_field(data, 'possession', 'gameState'), 'gameState.possession'),
            game_running=_as_bool(_field(data, 'gameRunning', 'gameState'), 'gameState.gameRunning'),
            shot_clock_running=_as_bool(_field(data, 'shotClockRunning', 'gameState'), 'gameState.shotClockRunning'),
            game_clock_deadline=_as_deadline(data.get('gameClockDeadline'), 'gameState.gameClockDeadline'),
            shot_clock_deadline=_as_deadline(data.get('shotClockDeadline'), 'gameState.shotClockDeadline'),
        )


@dataclass
class GameState:
    code: str
    settings: Settings
    team_a: Team
    team_b: Team
    clock: ClockState
    game_type: str = 'friendly'
    last_update: int = 0

    def team(self, key: str) -> Team:
        if key == 'teamA':
            return self.team_a
        if key == 'teamB':
            return self.team_b
        raise ValidationError(f"Unknown team {key!r}; expected one of {', '.join(TEAMS)}")

    def copy(self) -> 'GameState':
        return copy.deepcopy(self)

    def validate(self) -> 'GameState':
        """Check the document invariants; return self for chaining."""
        settings = self.settings
        if settings.period_duration < 0:
            raise ValidationError('settings.periodDuration must not be negative')
        if not 0 <= settings.shot_clock_duration <= MAX_SHOT_CLOCK:
            raise ValidationError(f"settings.shotClockDuration must be 0-{MAX_SHOT_CLOCK}")
        if settings.timeouts_per_team < 0:
            raise ValidationError('settings.timeoutsPerTeam must not be negative')
        if self.game_type not in GAME_TYPES:
            raise ValidationError(f"gameType must be one of {', '.join(GAME_TYPES)}")

        for key in TEAMS:
            team = self.team(key)
            if team.score < 0 or team.fouls < 0:
                raise ValidationError(f"{key} score and fouls must not be negative")
            if not 0 <= team.timeouts <= settings.timeouts_per_team:
                raise ValidationError(f"{key}.timeouts must be 0-{settings.timeouts_per_team}")
            if len(team.roster) > MAX_ROSTER_SIZE:
                raise ValidationError(f"{key} roster exceeds {MAX_ROSTER_SIZE} players")
            numbers = [p.number for p in team.roster]
            if len(set(numbers)) != len(numbers):
                raise ValidationError(f"{key} roster has duplicate jersey numbers")
            if any(n < 0 or n > MAX_JERSEY_NUMBER for n in numbers):
                raise ValidationError(f"{key} roster jersey numbers must be 0-{MAX_JERSEY_NUMBER}")

        clock = self.clock
        if clock.period < 1:
            raise ValidationError('gameState.period must be at least 1')
        if clock.game_time.minutes < 0 or not 0 <= clock.game_time.seconds <= 59:
            raise ValidationError('gameState.gameTime out of range')
        if clock.shot_clock < 0:
            raise ValidationError('gameState.shotClock must not be negative')
        if clock.possession not in TEAMS:
            raise ValidationError(f"gameState.possession must be one of {', '.join(TEAMS)}")
        if clock.shot_clock_running and not settings.shot_clock_enabled:
            raise ValidationError('shot clock cannot run while disabled')
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'gameType': self.game_type,
            'settings': self.settings.to_dict(),
            'teamA': self.team_a.to_dict(),
            'teamB': self.team_b.to_dict(),
            'gameState': self.clock.to_dict(),
            'lastUpdate': self.last_update,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameState':
        """Build and validate a GameState from a stored document."""
        if not isinstance(data, dict):
            raise ValidationError('document must be an object')
        state = cls(
            code=str(_field(data, 'code', 'document')),
            game_type=_as_str(data.get('gameType', 'friendly'), 'gameType'),
            settings=Settings.from_dict(_field(data, 'settings', 'document')),
            team_a=Team.from_dict(_field(data, 'teamA', 'document'), 'teamA'),
            team_b=Team.from_dict(_field(data, 'teamB', 'document'), 'teamB'),
            clock=ClockState.from_dict(_field(data, 'gameState', 'document')),
            last_update=_as_int(data.get('lastUpdate', 0), 'lastUpdate'),
        )
        return state.validate()
