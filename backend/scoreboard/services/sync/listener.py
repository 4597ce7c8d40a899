"""Reconciliation listener: applies store snapshots to the local replica."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from . import signals
from .clock import recompute_from_deadlines
from .errors import ValidationError
from .state import GameState


logger = logging.getLogger(__name__)


class ReconciliationListener:
    """Subscribes a session to its document.

    Every snapshot replaces the replica wholesale (the store is authoritative
    in full, no field merge) and then starts or stops the clock engine to match
    the replicated run-flags. A missing document ends the session.
    """

    def __init__(self, session):
        self.session = session
        self._unsubscribe = None

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self.active:
            return
        unsubscribe = self.session.store.subscribe(self.session.code, self.on_snapshot)
        if self.session.ended:
            # The initial delivery already reported the document missing
            unsubscribe()
            return
        self._unsubscribe = unsubscribe
        logger.info(f"[subscribe] session={self.session.code} role={self.session.role.value}")

    def stop(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            logger.info(f"[unsubscribe] session={self.session.code}")

    def on_snapshot(self, document: Optional[Dict[str, Any]]) -> None:
        session = self.session
        if session.ended:
            return
        if document is None:
            self._end()
            return
        try:
            state = GameState.from_dict(document)
        except ValidationError as exc:
            logger.warning(f"[snapshot-rejected] session={session.code} error={exc}")
            return

        with session.lock:
            if session.deadline_mode:
                state = recompute_from_deadlines(state, session.now())
            session.replica = state
            session.engine.sync_with_flags()
            engine_running = session.engine.running

        logger.debug(
            f"[snapshot] session={session.code} lastUpdate={state.last_update} "
            f"clock={state.clock.game_time} shot={state.clock.shot_clock} engine={engine_running}"
        )
        signals.snapshot_applied.send(session, state=state)
        session.notify_update(state)

    def _end(self) -> None:
        session = self.session
        with session.lock:
            session.ended = True
            session.engine.stop()
            session.stop_autosave()
        self.stop()
        logger.info(f"[session-ended] session={session.code}")
        signals.session_ended.send(session, code=session.code)
