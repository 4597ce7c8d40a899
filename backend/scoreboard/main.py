from flask import Blueprint, jsonify
from sqlalchemy import text
from scoreboard import db

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the scoreboard store!'})

@main.route('/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
    except Exception as exc:
        return jsonify({'status': 'error', 'database': str(exc)}), 503
    return jsonify({'status': 'ok'})
