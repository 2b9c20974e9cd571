from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.security import generate_password_hash
import click
from config import Config

WS_NAMESPACE = '/ws'
ENGINE_KEY = 'bingo_engine'

cors = CORS()
socketio = SocketIO(async_mode=None)


def get_engine(flask_app):
    return flask_app.extensions[ENGINE_KEY]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    cors.init_app(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One shared session per process; frames go out through Socket.IO
    from bingo.services.engine import SessionEngine

    def send_frame(conn_id, text):
        socketio.send(text, to=conn_id, namespace=WS_NAMESPACE)

    flask_app.extensions[ENGINE_KEY] = SessionEngine.from_config(
        flask_app.config,
        sender=send_frame,
        spawn=socketio.start_background_task,
        logger=flask_app.logger,
    )

    from bingo.routes import main
    flask_app.register_blueprint(main)

    from bingo.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('hash-admin-password')
    @click.password_option()
    def hash_admin_password_command(password):
        """Prints a hash to use as ADMIN_PASSWORD_HASH."""
        click.echo(generate_password_hash(password))

    flask_app.cli.add_command(hash_admin_password_command)

    return flask_app
