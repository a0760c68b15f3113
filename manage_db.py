#!/usr/bin/env python3
"""
Database management script.

Usage:
    python manage_db.py init-db
    python manage_db.py recalculate <tournament_id>
"""
import argparse
import logging
import sys

from scoreboard.app import create_app
from scoreboard.models import db

logger = logging.getLogger(__name__)


def init_db(app):
    """Create any missing tables."""
    with app.app_context():
        db.create_all()
    logger.info("Database tables created.")
    return 0


def recalculate(app, tournament_id: str):
    """Rebuild team statistics of one tournament from its group matches."""
    with app.app_context():
        result = app.coordinator.recalculate_stats(tournament_id)
    if not result:
        logger.error(f"Recalculation failed: {result.message}")
        return 1
    logger.info(f"{result.message} ({result.details['matches_counted']} group matches counted)")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Scoreboard database tasks")
    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('init-db', help="create database tables")
    recalc = subparsers.add_parser('recalculate', help="rebuild team statistics")
    recalc.add_argument('tournament_id')

    args = parser.parse_args(argv)
    app = create_app()

    if args.command == 'init-db':
        return init_db(app)
    return recalculate(app, args.tournament_id)


if __name__ == '__main__':
    sys.exit(main())
