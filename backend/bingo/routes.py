from flask import Blueprint, current_app, jsonify

from bingo import get_engine, WS_NAMESPACE
from bingo.models import isoformat, utcnow

SERVICE_NAME = 'bingo-server'

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({
        'message': 'Welcome to the bingo server!',
        'websocket': WS_NAMESPACE,
        'health': '/health',
    })


@main.route('/health')
def health():
    return jsonify({
        'status': 'ok',
        'timestamp': isoformat(utcnow()),
        'service': SERVICE_NAME,
        'session': get_engine(current_app).summary(),
    })


@main.route('/api/session/state')
def session_state():
    """Returns the same public snapshot admins receive as ``gameState``."""
    return jsonify(get_engine(current_app).snapshot())


@main.app_errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Not found'}), 404
