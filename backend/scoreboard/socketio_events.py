from flask_socketio import join_room, leave_room, emit
from flask import current_app
from scoreboard import socketio
from scoreboard.services.documents.store import load_document, room_for


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_subscribe(data):
    """Join the session room and send the current document straight away."""
    code = str((data or {}).get('code') or '').strip()
    if not code:
        emit('error', {'message': 'code is required'})
        return
    join_room(room_for(code))
    row = load_document(code)
    current_app.logger.info(f"[subscribe] session={code} exists={row is not None}")
    emit('snapshot', {'code': code, 'document': row.to_dict() if row else None})


def handle_unsubscribe(data):
    code = str((data or {}).get('code') or '').strip()
    if not code:
        emit('error', {'message': 'code is required'})
        return
    leave_room(room_for(code))
    emit('unsubscribed', {'code': code})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('subscribe', handle_subscribe, namespace='/ws')
    socketio.on_event('unsubscribe', handle_unsubscribe, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('subscribe', handle_subscribe, namespace='/')
        socketio.on_event('unsubscribe', handle_unsubscribe, namespace='/')
