import random
import uuid

# Word lists for friendly tournament identifiers
ADJECTIVES = [
    'swift', 'spinning', 'fierce', 'golden', 'silver', 'crimson', 'azure', 'emerald',
    'heavy', 'flat', 'sharp', 'rapid', 'steady', 'bold', 'wild', 'clever',
    'fearless', 'relentless', 'blazing', 'frozen', 'electric', 'rising', 'falling', 'late',
    'early', 'curving', 'deep', 'short', 'long', 'quiet', 'loud', 'sudden'
]

NOUNS = [
    'topspin', 'backspin', 'sidespin', 'smash', 'loop', 'chop', 'flick', 'block',
    'push', 'lob', 'drive', 'serve', 'return', 'counter', 'paddle', 'racket',
    'net', 'edge', 'corner', 'rubber', 'blade', 'forehand', 'backhand', 'footwork'
]

MATCH_DESCRIPTORS = [
    'cup', 'open', 'classic', 'series', 'league', 'masters', 'showdown',
    'invitational', 'championship', 'trophy', 'shield', 'derby'
]

MATCH_PREFIXES = {
    'group': 'g',
    'quarterfinal': 'qf',
    'semifinal': 'sf',
    'final': 'f',
}


def generate_tournament_name() -> str:
    """Generate a friendly tournament id like 'spinning-topspin-open'"""
    adj = random.choice(ADJECTIVES)
    noun = random.choice(NOUNS)
    descriptor = random.choice(MATCH_DESCRIPTORS)
    return f"{adj}-{noun}-{descriptor}"


def generate_short_id(prefix: str = "") -> str:
    """Generate a short random ID for uniqueness"""
    short = uuid.uuid4().hex[:8]
    return f"{prefix}{short}" if prefix else short


def generate_tournament_id() -> str:
    return f"{generate_tournament_name()}-{generate_short_id()[:4]}"


def generate_team_id() -> str:
    return generate_short_id("team_")


def generate_match_id(match_type: str) -> str:
    """Generate a match id whose prefix shows the stage, e.g. 'sf_1a2b3c4d'"""
    prefix = MATCH_PREFIXES.get(match_type, 'm')
    return generate_short_id(f"{prefix}_")
