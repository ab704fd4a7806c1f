"""
Tests for the per-line stage cascade.
"""

from dataclasses import replace

import pytest

from receipt_ocr.coordinator import LineState, StageCoordinator, build_stage_chain, coordinate, mean_confidence
from receipt_ocr.normalizer import normalize_text
from receipt_ocr.stages.base import MatchCandidate
from receipt_ocr.utils.config import PipelineConfig


RECEIPT = "\n".join(
	[
		"スーパー 駅前店",
		"牛乳 ¥178",
		"キャベツ 1個 ¥198",
		"りんご 2個",
		"合計 ¥376",
	]
)


@pytest.fixture
def lines():
	return normalize_text(RECEIPT)


def _by_index(result, index):
	return next(r for r in result.resolutions if r.line_index == index)


class TestCascade:

	def test_one_resolution_per_line_in_order(self, lines, library):
		result = coordinate(lines, library)
		assert [r.line_index for r in result.resolutions] == [0, 1, 2, 3, 4]

	def test_non_item_lines_stay_unresolved(self, lines, library):
		res = _by_index(coordinate(lines, library), 0)
		assert res.state is LineState.UNRESOLVED
		assert res.path == ("pending", "unresolved")
		assert res.attempts == ()

	def test_strict_acceptance_stops_the_cascade(self, lines, library):
		res = _by_index(coordinate(lines, library), 1)
		assert res.state is LineState.RESOLVED
		assert res.path == ("pending", "strict-attempted", "resolved")
		assert [a.stage for a in res.attempts] == ["strict"]
		assert res.accepted.stage == "strict"

	def test_flexible_after_strict_abstains(self, lines, library):
		res = _by_index(coordinate(lines, library), 2)
		assert res.path == ("pending", "strict-attempted", "flexible-attempted", "resolved")
		assert res.attempts[0].outcome == "abstained"
		assert res.accepted.stage == "flexible"

	def test_heuristic_is_the_fallback(self, lines, library):
		res = _by_index(coordinate(lines, library), 3)
		assert res.path[-2:] == ("heuristic-attempted", "resolved")
		assert res.accepted.stage == "heuristic"

	def test_rejected_flexible_falls_through_to_heuristic(self, lines, library):
		cfg = replace(PipelineConfig(), flexible_threshold=0.9)
		res = _by_index(coordinate(lines, library, config=cfg), 2)
		assert [a.outcome for a in res.attempts] == ["abstained", "rejected", "accepted"]
		assert res.accepted.stage == "heuristic"

	def test_candidates_follow_line_order(self, lines, library):
		result = coordinate(lines, library)
		assert [c.line_index for c in result.candidates] == [1, 2, 3]

	def test_document_confidence_is_the_mean(self, lines, library):
		result = coordinate(lines, library)
		expected = sum(c.confidence for c in result.candidates) / 3
		assert result.confidence == pytest.approx(expected, abs=1e-4)


class TestCollectAll:

	def test_all_stages_run_but_selection_is_unchanged(self, lines, library):
		plain = coordinate(lines, library)
		full = coordinate(lines, library, collect_all=True)
		assert full.candidates == plain.candidates
		res = _by_index(full, 1)
		assert [a.stage for a in res.attempts] == ["strict", "flexible", "heuristic"]
		assert [a.in_cascade for a in res.attempts] == [True, False, False]
		assert res.path == _by_index(plain, 1).path
		assert len(full.all_candidates) > len(plain.all_candidates)


class TestCoordinator:

	def test_threaded_matches_sequential(self, lines, library):
		seq = StageCoordinator(build_stage_chain(), max_workers=1).coordinate(lines, library)
		par = StageCoordinator(build_stage_chain(), max_workers=4).coordinate(lines, library)
		assert par.resolutions == seq.resolutions

	def test_empty_chain_is_rejected(self):
		with pytest.raises(ValueError):
			StageCoordinator([])

	def test_vendor_hint_selects_vendor_patterns(self, library):
		lines = normalize_text("4901 りんご 2 @ 150 300")
		hinted = coordinate(lines, library, "A-Mart")
		plain = coordinate(lines, library)
		assert hinted.candidates[0].pattern_id == "amart-code-qty-at"
		assert plain.candidates[0].pattern_id == "generic-name-at-total"
		assert hinted.pattern_ids[0] == "amart-code-qty-at"

	def test_mean_confidence_of_nothing(self):
		assert mean_confidence([]) == 0.0
		cands = [
			MatchCandidate(line_index=0, stage="strict", pattern_id="a", confidence=0.9),
			MatchCandidate(line_index=1, stage="flexible", pattern_id="b", confidence=0.6),
		]
		assert mean_confidence(cands) == 0.75
