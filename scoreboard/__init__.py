"""
Scoreboard Service - Table-Tennis Tournament Progression

Responsibilities:
- Tournament and team registry (CRUD)
- Set-by-set match scoring
- Group standings with tie-break cascade
- Semi-final seeding, semi-final 2 backfill and final creation
- Event notifications for the display layer
"""
