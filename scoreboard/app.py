import logging
import os

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from shared.pubsub import EventPublisher
from .auth import require_pin
from .config import config
from .models import db
from .progression import ProgressionCoordinator
from .tournament_registry import TournamentRegistry

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )


def create_app(config_name: str = None) -> Flask:
    """Application factory for the scoreboard service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config['default']))

    configure_logging(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)

    with app.app_context():
        db.create_all()

    # Store services on app for access in routes
    app.publisher = EventPublisher.from_url(app.config.get('REDIS_URL'))
    app.registry = TournamentRegistry(publisher=app.publisher)
    app.coordinator = ProgressionCoordinator(
        publisher=app.publisher,
        strict_scores=app.config.get('STRICT_SCORE_INPUT', False),
        shuffle_attempts=app.config.get('FIXTURE_SHUFFLE_ATTEMPTS', 20)
    )

    from .routes import tournaments, matches, teams
    app.register_blueprint(tournaments.bp)
    app.register_blueprint(matches.bp)
    app.register_blueprint(teams.bp)

    register_service_routes(app)
    register_error_handlers(app)

    logger.info(f"Scoreboard app created with '{config_name}' config")
    return app


def register_service_routes(app: Flask):

    @app.route('/api/v1/health')
    def health():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            db_ok = False

        return jsonify({
            'status': 'healthy' if db_ok else 'unhealthy',
            'database': db_ok,
            'redis': app.publisher.ping()
        }), 200 if db_ok else 503

    @app.route('/api/v1/admin/verify-pin', methods=['POST'])
    @require_pin
    def verify_pin():
        return jsonify({'message': 'PIN verified', 'valid': True})


def register_error_handlers(app: Flask):

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        logger.exception(f"Unhandled error: {e}")
        return jsonify({'error': 'Internal server error'}), 500
