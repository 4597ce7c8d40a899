from flask import Blueprint, jsonify, request, current_app
from scoreboard.services.documents.store import (
    broadcast_session_ended,
    broadcast_snapshot,
    delete_document,
    load_document,
    save_document,
)
from scoreboard.services.sync.errors import AuthorityViolation, StaleWriteError, ValidationError
from scoreboard.services.sync.session import is_valid_code


sessions = Blueprint('sessions', __name__)


@sessions.route('/<string:code>', methods=['GET'])
def get_session(code):
    row = load_document(code)
    if not row:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify(row.to_dict())


@sessions.route('/<string:code>', methods=['PUT'])
def put_session(code):
    if not is_valid_code(code):
        return jsonify({'error': 'Session code must be 6 digits'}), 400
    document = request.get_json(silent=True)
    if not isinstance(document, dict):
        return jsonify({'error': 'A JSON document is required'}), 400

    try:
        row, created = save_document(
            code,
            document,
            host_password=request.headers.get('X-Host-Password'),
            host_token=request.headers.get('X-Host-Token'),
        )
    except ValidationError as exc:
        return jsonify({'error': str(exc)}), 400
    except AuthorityViolation as exc:
        current_app.logger.warning(f"[store-denied] session={code} reason={exc}")
        return jsonify({'error': str(exc)}), 403
    except StaleWriteError as exc:
        current_app.logger.info(f"[store-stale] session={code} {exc}")
        return jsonify({'error': str(exc)}), 409

    # Every committed write goes to every subscriber, the writer included
    broadcast_snapshot(code, row.to_dict())

    if created:
        return jsonify({'code': code, 'host_token': row.host_token}), 201
    return jsonify({'code': code, 'lastUpdate': row.last_update})


@sessions.route('/<string:code>/host', methods=['POST'])
def claim_host(code):
    data = request.get_json(silent=True) or {}
    row = load_document(code)
    if not row:
        return jsonify({'error': 'Session not found'}), 404
    if not row.check_host_password(data.get('password') or ''):
        return jsonify({'error': 'Invalid host password'}), 403
    return jsonify({'code': code, 'host_token': row.host_token})


@sessions.route('/<string:code>', methods=['DELETE'])
def delete_session(code):
    row = load_document(code)
    if not row:
        return jsonify({'error': 'Session not found'}), 404
    if not row.check_host_token(request.headers.get('X-Host-Token')):
        return jsonify({'error': 'Only the host may end this session'}), 403
    delete_document(code)
    broadcast_session_ended(code)
    return '', 204
