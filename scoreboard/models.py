from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

from shared.state_machine import TournamentStatus, MatchStatus, MatchType

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.String(100), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=TournamentStatus.UPCOMING.value)

    # Knockout slots hold public match ids; semifinal 1 is 1st vs 2nd,
    # semifinal 2 is 3rd vs the loser of semifinal 1.
    semifinal1_id = db.Column(db.String(50), nullable=True)
    semifinal2_id = db.Column(db.String(50), nullable=True)
    final_match_id = db.Column(db.String(50), nullable=True)

    winner_team_id = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    teams = db.relationship('Team', back_populates='tournament', cascade='all, delete-orphan',
                            order_by='Team.id')
    matches = db.relationship('Match', back_populates='tournament', cascade='all, delete-orphan',
                              order_by='Match.id')

    @property
    def semifinal_ids(self):
        return [mid for mid in (self.semifinal1_id, self.semifinal2_id) if mid]

    def to_dict(self):
        return {
            'tournament_id': self.tournament_id,
            'name': self.name,
            'description': self.description,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'status': self.status,
            'teams': [t.team_id for t in self.teams],
            'team_count': len(self.teams),
            'semifinal1_id': self.semifinal1_id,
            'semifinal2_id': self.semifinal2_id,
            'final_match_id': self.final_match_id,
            'winner_team_id': self.winner_team_id,
            'created_at': _iso(self.created_at),
        }


class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    players = db.Column(db.JSON, nullable=False, default=list)  # opaque player ids

    # Group-stage accumulators, only touched by the progression coordinator
    matches_played = db.Column(db.Integer, nullable=False, default=0)
    matches_won = db.Column(db.Integer, nullable=False, default=0)
    matches_lost = db.Column(db.Integer, nullable=False, default=0)
    points = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='teams')

    def to_dict(self):
        return {
            'team_id': self.team_id,
            'tournament_id': self.tournament.tournament_id if self.tournament else None,
            'name': self.name,
            'players': list(self.players or []),
            'matches_played': self.matches_played,
            'matches_won': self.matches_won,
            'matches_lost': self.matches_lost,
            'points': self.points,
        }


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)

    team1_id = db.Column(db.String(50), nullable=False)
    team2_id = db.Column(db.String(50), nullable=True)  # null while awaiting the semifinal 1 loser
    winner_id = db.Column(db.String(50), nullable=True)

    match_type = db.Column(db.String(20), nullable=False, default=MatchType.GROUP.value)
    status = db.Column(db.String(20), nullable=False, default=MatchStatus.SCHEDULED.value)
    sequence = db.Column(db.Integer, nullable=True)  # fixture order within the group stage
    match_date = db.Column(db.DateTime, default=datetime.utcnow)

    # True while this match's group-stage delta is applied to both teams
    stats_applied = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='matches')
    scores = db.relationship('Score', back_populates='match', cascade='all, delete-orphan',
                             order_by='Score.set_number')

    @property
    def is_completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED.value

    @property
    def loser_id(self):
        if not self.winner_id or not self.team2_id:
            return None
        return self.team2_id if self.winner_id == self.team1_id else self.team1_id

    def involves(self, team_id: str) -> bool:
        return team_id in (self.team1_id, self.team2_id)

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'tournament_id': self.tournament.tournament_id if self.tournament else None,
            'team1': self.team1_id,
            'team2': self.team2_id,
            'winner': self.winner_id,
            'match_type': self.match_type,
            'status': self.status,
            'sequence': self.sequence,
            'match_date': _iso(self.match_date),
            'scores': [s.to_dict() for s in sorted(self.scores, key=lambda s: s.set_number)],
        }


class Score(db.Model):
    __tablename__ = 'scores'

    id = db.Column(db.Integer, primary_key=True)
    match_pk = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False)
    set_number = db.Column(db.Integer, nullable=False)
    team1_score = db.Column(db.Integer, nullable=False, default=0)
    team2_score = db.Column(db.Integer, nullable=False, default=0)

    match = db.relationship('Match', back_populates='scores')

    __table_args__ = (
        db.UniqueConstraint('match_pk', 'set_number', name='unique_set_per_match'),
    )

    def to_dict(self):
        return {
            'set_number': self.set_number,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
        }
