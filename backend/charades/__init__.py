from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

DEFAULT_TASKS = [
    ('Titanic', 'movies'), ('The Lion King', 'movies'), ('Jaws', 'movies'),
    ('Star Wars', 'movies'), ('Inception', 'movies'), ('Frozen', 'movies'),
    ('Breaking Bad', 'series'), ('Friends', 'series'), ('Sherlock', 'series'),
    ('Brushing teeth', 'actions'), ('Riding a horse', 'actions'), ('Baking bread', 'actions'),
]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins)

    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from charades.main import main
    flask_app.register_blueprint(main)

    from charades.api.lobbies import lobbies
    flask_app.register_blueprint(lobbies, url_prefix='/api/lobbies')

    from charades.api.tasks import tasks
    flask_app.register_blueprint(tasks, url_prefix='/api/tasks')

    from charades.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from charades.models import Player

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Player, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for nickname in ['alice', 'bob', 'cara']:
                player = Player(nickname=nickname)
                player.set_pin('1234')
                db.session.add(player)
            _seed_tasks()

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('seed-tasks')
    def seed_tasks_command():
        """Adds the default charades prompts."""
        with flask_app.app_context():
            added = _seed_tasks()
            db.session.commit()
            print(f'Added {added} tasks.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_tasks_command)

    return flask_app


def _seed_tasks():
    from charades.models import CharadesTask
    added = 0
    for content, category in DEFAULT_TASKS:
        if not CharadesTask.query.filter_by(content=content).first():
            db.session.add(CharadesTask(content=content, category=category))
            added += 1
    return added
