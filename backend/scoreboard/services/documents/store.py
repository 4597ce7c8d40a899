from typing import Optional, Tuple

from flask import current_app

from scoreboard import db, socketio
from scoreboard.models import ScoreboardDocument
from scoreboard.services.sync.errors import AuthorityViolation, StaleWriteError, ValidationError
from scoreboard.services.sync.state import GameState


def room_for(code: str) -> str:
    return f"session:{code}"


def load_document(code: str) -> Optional[ScoreboardDocument]:
    return ScoreboardDocument.query.filter_by(code=code).first()


def save_document(code: str, document, *, host_password: Optional[str] = None,
                  host_token: Optional[str] = None) -> Tuple[ScoreboardDocument, bool]:
    """Validate and store a full document, replacing whatever was there.

    Creating a document requires the host password; overwriting one requires
    the host token issued at creation. Returns (row, created).
    """
    state = GameState.from_dict(document)
    if state.code != code:
        raise ValidationError(f"Document code {state.code} does not match {code}")

    row = load_document(code)
    created = row is None
    if created:
        min_len = int(current_app.config.get('MIN_HOST_PASSWORD_LENGTH', 4))
        if not host_password or len(host_password) < min_len:
            raise AuthorityViolation(f"Password must be at least {min_len} characters")
        row = ScoreboardDocument(code=code)
        row.set_host_password(host_password)
        row.issue_host_token()
    else:
        if not row.check_host_token(host_token):
            raise AuthorityViolation('Only the host may write this session')
        if current_app.config.get('REJECT_STALE_WRITES') and state.last_update < row.last_update:
            raise StaleWriteError(
                f"Write for lastUpdate={state.last_update} is older than stored {row.last_update}"
            )

    row.set_document(state.to_dict())
    db.session.add(row)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(
        f"[store-write] session={code} created={created} lastUpdate={row.last_update}"
    )
    return row, created


def delete_document(code: str) -> bool:
    row = load_document(code)
    if row is None:
        return False
    db.session.delete(row)
    db.session.commit()
    current_app.logger.info(f"[store-delete] session={code}")
    return True


def broadcast_snapshot(code: str, document) -> None:
    """Push the full document (None once deleted) to every subscriber of the session."""
    socketio.emit('snapshot', {'code': code, 'document': document}, to=room_for(code), namespace='/ws')


def broadcast_session_ended(code: str) -> None:
    broadcast_snapshot(code, None)
    socketio.emit('session_ended', {'code': code}, to=room_for(code), namespace='/ws')
