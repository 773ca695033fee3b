from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from memebattle.main import main
    flask_app.register_blueprint(main)

    from memebattle.api.lobbies import lobbies
    flask_app.register_blueprint(lobbies, url_prefix='/api/lobbies')

    # Registers the round event handlers
    import memebattle.services.games  # noqa: F401

    from memebattle.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database."""
        import memebattle.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('sweep-lobbies')
    def sweep_lobbies_command():
        """Deletes empty and abandoned lobbies once."""
        from memebattle.services.games.sweeper import sweep_lobbies
        with flask_app.app_context():
            stats = sweep_lobbies(flask_app)
            print(f"Removed {stats['empty']} empty and {stats['abandoned']} abandoned lobbies "
                  f"({stats['processed']} checked)")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(sweep_lobbies_command)

    return flask_app
