from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    registry = current_app.extensions['sudoku_battle']
    return jsonify({'message': 'Welcome to the Sudoku Battle server!', 'sessions': len(registry)})
