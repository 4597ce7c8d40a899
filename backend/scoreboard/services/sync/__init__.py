"""Scoreboard synchronization core.

This package is the client side of a session: the replicated GameState, the
store adapters, the host-only mutation API, the local clock engine and the
reconciliation listener. It has no Flask dependency, so it runs in any
process that can reach a store.
"""

from .errors import (
    AuthorityViolation,
    NetworkError,
    NotFoundError,
    ScoreboardError,
    StaleWriteError,
    ValidationError,
)
from .session import Role, ScoreboardSession, SessionConfig, create_session, join_session
from .state import GameState
from .store import HttpStore, InMemoryStore, RemoteStore

__all__ = [
    'AuthorityViolation',
    'GameState',
    'HttpStore',
    'InMemoryStore',
    'NetworkError',
    'NotFoundError',
    'RemoteStore',
    'Role',
    'ScoreboardError',
    'ScoreboardSession',
    'SessionConfig',
    'StaleWriteError',
    'ValidationError',
    'create_session',
    'join_session',
]
