from flask import Blueprint, current_app, jsonify

sessions = Blueprint('sessions', __name__)


@sessions.route('/<string:code>', methods=['GET'])
def get_session_state(code):
    """
    Returns the public state of a live session. The solution is never included.
    """
    coordinator = current_app.extensions['sudoku_battle'].find(code)
    if coordinator is None:
        return jsonify({'error': 'Session not found or expired'}), 404
    return jsonify(coordinator.public_state())
