#!/usr/bin/env python3
"""
Entry point for the Table-Tennis Scoreboard service.

Usage:
    python run.py

Environment Variables:
    FLASK_ENV: development, production or testing (default: development)
    PORT: Port to run on (default: 5000)
    DATABASE_URL: SQLAlchemy database URL
    REDIS_URL: Redis URL for event notifications (optional)
    ADMIN_PIN: PIN required by admin operations
"""
import logging
import os

from scoreboard.app import create_app

logger = logging.getLogger(__name__)


def run_scoreboard():
    """Run the scoreboard service."""
    app = create_app()
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    logger.info(f"Starting Scoreboard on port {port}...")
    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    run_scoreboard()
