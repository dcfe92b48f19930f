from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click

from sudoku_battle.config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, scheduler=None, puzzle_factory=None, clock=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    origins = flask_app.config.get('CORS_ORIGINS', '*')
    CORS(flask_app, origins=origins)
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from sudoku_battle.broadcast import SocketIOBroadcaster
    from sudoku_battle.registry import SessionRegistry
    from sudoku_battle.services.games.scheduler import BackgroundScheduler, start_sweeper

    registry = SessionRegistry(
        SocketIOBroadcaster(socketio),
        scheduler or BackgroundScheduler(socketio, flask_app.logger),
        config=flask_app.config,
        logger=flask_app.logger,
        clock=clock,
        puzzle_factory=puzzle_factory,
    )
    flask_app.extensions['sudoku_battle'] = registry

    from sudoku_battle.main import main
    flask_app.register_blueprint(main)

    from sudoku_battle.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from sudoku_battle.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    start_sweeper(flask_app, socketio, registry)

    @click.command('generate-puzzle')
    @click.option('--difficulty', default='medium', show_default=True)
    def generate_puzzle_command(difficulty):
        """Generates and prints one carved puzzle."""
        from sudoku_battle.services.puzzle import new_puzzle
        _solution, carved = new_puzzle(
            difficulty, budget=int(flask_app.config.get('SOLVER_NODE_BUDGET', 200000)))
        for row in carved.puzzle:
            click.echo(' '.join(str(v) if v else '.' for v in row))
        click.echo(f'blanks={carved.blanks} target={carved.target} shortfall={carved.shortfall}')

    flask_app.cli.add_command(generate_puzzle_command)

    return flask_app
