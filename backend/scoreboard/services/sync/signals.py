"""Presentation hooks emitted by the sync core.

Every signal is sent with the owning ``ScoreboardSession`` as sender, so a view
subscribes to exactly one session with ``signal.connect(fn, sender=session)``.
"""

from blinker import Namespace

_signals = Namespace()

# kwargs: state
snapshot_applied = _signals.signal('snapshot-applied')
clock_ticked = _signals.signal('clock-ticked')
# kwargs: state (presentation only, never replicated)
low_shot_clock = _signals.signal('low-shot-clock')
# kwargs: state, possession (the team now holding the ball)
shot_clock_violation = _signals.signal('shot-clock-violation')
# kwargs: state, period
period_ended = _signals.signal('period-ended')
# kwargs: code
session_ended = _signals.signal('session-ended')
# kwargs: error, action
sync_failed = _signals.signal('sync-failed')
