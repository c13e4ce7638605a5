from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
import time
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from livequiz.errors import register_error_handlers
    register_error_handlers(flask_app)

    # Document store and the host-side timer registry are owned by this app
    from livequiz.store import store
    store.init_app(flask_app)
    from livequiz.services.games.timer import QuestionTimer
    QuestionTimer(flask_app)

    from livequiz.main import main
    flask_app.register_blueprint(main)

    from livequiz.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')
    from livequiz.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    from livequiz.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from livequiz.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Sign in required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a host and a sample quiz."""
        from livequiz.entities import Question, Quiz, new_id
        from livequiz import repository
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            host = User(username='host', display_name='Quiz Host')
            host.set_password('password')
            db.session.add(host)
            for u in ['player1', 'player2', 'player3']:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)
            db.session.commit()

            now = time.time()
            repository.save_quiz(Quiz(
                id=new_id(),
                title='Warm-up',
                created_by=host.uid,
                created_at=now,
                updated_at=now,
                questions=[
                    Question(id=new_id(), text='2 + 2 = ?', options=['3', '4', '5', '22'], correct_answer=1),
                    Question(id=new_id(), text='Largest planet?', options=['Mars', 'Venus', 'Jupiter', 'Earth'],
                             correct_answer=2, time_limit=20),
                ],
            ))
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
