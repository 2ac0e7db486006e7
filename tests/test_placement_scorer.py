"""
Tests for the multi-objective placement scorer.
"""

import pytest

from conftest import make_room, rel
from pharma_design_ai.core.placement_scorer import PlacementScorer, ScoringWeights
from pharma_design_ai.models.relationship import RelationshipType
from pharma_design_ai.models.room import RoomCategory


@pytest.fixture
def scorer(canvas):
    return PlacementScorer(canvas, ScoringWeights())


class TestScoringWeights:
    """Weights from settings."""

    def test_from_settings_ignores_unknown_keys(self):
        weights = ScoringWeights.from_settings({"scoring": {"flow": 0.9, "bogus": 3}})
        assert weights.flow == 0.9
        assert weights.overlap == 1.0

    def test_as_array_order(self):
        assert list(ScoringWeights().as_array()) == [1.0, 0.8, 0.6, 0.5, 0.7]


# =============================================================================
# ADJACENCY
# =============================================================================

class TestAdjacencyScore:
    """Distance fit against ADJACENT_TO partners."""

    def _score_at(self, scorer, x):
        partner = make_room("partner", position=(1000, 1000))
        room = make_room("room")
        rels = [rel(RelationshipType.ADJACENT_TO, "room", "partner")]
        return scorer.breakdown((x, 1000), room, [partner], rels).adjacency

    def test_ideal_distance_scores_one(self, scorer, canvas):
        assert self._score_at(scorer, 1000 + canvas.node_spacing) == pytest.approx(1.0)

    def test_approaching_from_far_never_decreases(self, scorer):
        scores = [self._score_at(scorer, 1000 + d) for d in (600, 400, 350, 300, 250, 200)]
        assert scores == sorted(scores)

    def test_approaching_from_near_never_decreases(self, scorer):
        scores = [self._score_at(scorer, 1000 + d) for d in (20, 50, 100, 150, 200)]
        assert scores == sorted(scores)

    def test_no_partners_scores_one(self, scorer):
        room = make_room("room")
        other = make_room("other", position=(500, 500))
        assert scorer.breakdown((1000, 1000), room, [other], []).adjacency == 1.0

    def test_unplaced_partner_is_ignored(self, scorer):
        room = make_room("room")
        partner = make_room("partner")
        rels = [rel(RelationshipType.ADJACENT_TO, "partner", "room")]
        assert scorer.breakdown((1000, 1000), room, [partner], rels).adjacency == 1.0


# =============================================================================
# OTHER OBJECTIVES
# =============================================================================

class TestObjectives:
    """Overlap, flow, similarity and cohesion."""

    def test_overlap_zeroes_the_overlap_score(self, scorer):
        room = make_room("room")
        other = make_room("other", position=(1000, 1000))
        assert scorer.breakdown((1050, 1000), room, [other], []).overlap == 0.0
        assert scorer.breakdown((1500, 1000), room, [other], []).overlap == 1.0

    def test_position_on_flow_path_scores_one(self, scorer):
        source = make_room("source", position=(500, 1000))
        target = make_room("target", position=(1500, 1000))
        room = make_room("room")
        rels = [rel(RelationshipType.MATERIAL_FLOW, "source", "target")]
        on_path = scorer.breakdown((1000, 1000), room, [source, target], rels).flow
        off_path = scorer.breakdown((1000, 1600), room, [source, target], rels).flow
        assert on_path == pytest.approx(1.0)
        assert off_path < on_path

    def test_neutral_scores_without_context(self, scorer):
        room = make_room("room", category=RoomCategory.SUPPORT)
        other = make_room("other", category=RoomCategory.WAREHOUSE, position=(500, 500))
        parts = scorer.breakdown((1500, 1000), room, [other], [])
        assert parts.similarity == 0.5
        assert parts.flow == 0.5
        assert parts.cohesion == 1.0

    def test_cohesion_prefers_same_class_centroid(self, scorer):
        room = make_room("room", cleanroom_class="B")
        peers = [
            make_room("b1", cleanroom_class="B", position=(600, 600)),
            make_room("b2", cleanroom_class="B", position=(800, 600)),
        ]
        near = scorer.breakdown((700, 800), room, peers, []).cohesion
        far = scorer.breakdown((2500, 1600), room, peers, []).cohesion
        assert near > far

    def test_total_stays_in_unit_interval(self, scorer, sterile_layout):
        placed = sterile_layout.rooms[:3]
        for i, r in enumerate(placed):
            r.position = (500 + 300 * i, 1000)
        room = sterile_layout.get_room("gowning")
        for position in [(500, 1000), (1100, 1200), (2800, 1800)]:
            total = scorer.score(position, room, placed, sterile_layout.relationships)
            assert 0.0 <= total <= 1.0
