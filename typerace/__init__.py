from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy.exc import OperationalError
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=flask_app.config.get('CORS_ORIGINS') or '*')

    # Import and register blueprints here
    from typerace.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/room')

    from typerace.errors import RaceError, TransientStoreFailure

    @flask_app.errorhandler(RaceError)
    def handle_race_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(OperationalError)
    def handle_store_error(exc):
        # A failed statement must not leak a half-applied transaction into the next request
        db.session.rollback()
        flask_app.logger.warning(f"[store-error] {exc.__class__.__name__}: {exc.orig}")
        err = TransientStoreFailure()
        return jsonify(err.to_dict()), err.status_code

    @flask_app.route('/')
    def index():
        return jsonify({'message': 'Typerace server is running', 'status': 'healthy'})

    @click.command('db-reset')
    @click.option('--seed/--no-seed', default=False, help='Create a demo room after resetting.')
    def db_reset_command(seed):
        """Drops and recreates the database, optionally seeding a demo room."""
        from typerace.services.race.lifecycle import create_room
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            click.echo('Database has been reset!')
            if seed:
                room = create_room()
                click.echo(f'Demo room created: {room.code}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
