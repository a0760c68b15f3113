"""
Unit tests for name_generator module.
Tests: generate_tournament_name, generate_short_id, generate_tournament_id,
       generate_team_id, generate_match_id
"""
import re
from scoreboard.name_generator import (
    generate_tournament_name,
    generate_tournament_id,
    generate_team_id,
    generate_match_id,
    generate_short_id,
    ADJECTIVES,
    NOUNS,
    MATCH_DESCRIPTORS
)


class TestGenerateTournamentName:
    """Tests for generate_tournament_name function."""

    def test_follows_pattern(self):
        """Name should follow adjective-noun-descriptor pattern."""
        for _ in range(50):
            adjective, noun, descriptor = generate_tournament_name().split('-')
            assert adjective in ADJECTIVES
            assert noun in NOUNS
            assert descriptor in MATCH_DESCRIPTORS

    def test_url_safe(self):
        for _ in range(50):
            assert re.match(r'^[a-z-]+$', generate_tournament_name())

    def test_randomness(self):
        names = {generate_tournament_name() for _ in range(100)}
        assert len(names) >= 30


class TestGenerateIds:

    def test_short_id_length(self):
        assert len(generate_short_id()) == 8

    def test_short_id_prefix(self):
        assert generate_short_id("x_").startswith("x_")

    def test_tournament_id_has_suffix(self):
        tid = generate_tournament_id()
        assert len(tid.split('-')) == 4
        assert re.match(r'^[0-9a-f]{4}$', tid.split('-')[-1])

    def test_tournament_ids_unique(self):
        assert len({generate_tournament_id() for _ in range(50)}) == 50

    def test_team_id(self):
        assert generate_team_id().startswith("team_")

    def test_match_id_shows_stage(self):
        assert generate_match_id("group").startswith("g_")
        assert generate_match_id("semifinal").startswith("sf_")
        assert generate_match_id("final").startswith("f_")

    def test_unknown_match_type(self):
        assert generate_match_id("exhibition").startswith("m_")
