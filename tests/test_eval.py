"""
Tests for corpus evaluation, heuristic weight tuning and corpus loading.
"""

from dataclasses import replace

import pytest

from receipt_ocr.eval import evaluate_corpus, match_items
from receipt_ocr.tuning import tune_heuristic_weights
from receipt_ocr.utils.config import HeuristicWeights
from receipt_ocr.utils.resources import LabeledItem, load_labeled_receipts


@pytest.fixture(scope="module")
def receipts(corpus_path):
	return load_labeled_receipts(corpus_path)


class TestCorpus:

	def test_comments_and_blank_lines_are_skipped(self, receipts):
		assert [r.id for r in receipts] == ["r1", "r2", "r3"]
		assert receipts[1].vendor_hint == "A-Mart"

	def test_bad_record_names_the_line(self, tmp_path):
		path = tmp_path / "bad.jsonl"
		path.write_text('{"id": "a", "text": ""}\n{"id": 1\n', encoding="utf-8")
		with pytest.raises(ValueError, match=":2:"):
			load_labeled_receipts(path)


class TestEvaluate:

	def test_every_gold_item_is_found(self, receipts):
		report = evaluate_corpus(receipts)
		assert report["receipts"] == 3
		assert report["gold_items"] == 5
		assert report["item_recall"] == 1.0
		assert report["item_precision"] == 1.0
		assert report["field_accuracy"]["unit_price"] == 1.0
		assert report["field_accuracy"]["subtotal"] == 1.0
		assert 0.0 <= report["confidence_brier"] <= 1.0
		assert sum(report["stage_counts"].values()) == 5
		assert [d["id"] for d in report["per_doc"]] == ["r1", "r2", "r3"]

	def test_match_items_pairs_by_name(self, make_item):
		pred = [make_item(name="牛乳", line_index=0), make_item(name="KS WATER", line_index=1)]
		gold = [LabeledItem(name="ks water"), LabeledItem(name="パン")]
		assert match_items(pred, gold) == [(0, 1)]

	def test_empty_corpus(self):
		report = evaluate_corpus([])
		assert report["item_recall"] == 0.0
		assert report["confidence_brier"] == 0.0


class TestTuning:

	def test_picks_a_grid_member(self, receipts):
		grid = [HeuristicWeights(), replace(HeuristicWeights(), base=0.1)]
		best, trials = tune_heuristic_weights(receipts, grid=grid)
		assert len(trials) == 2
		assert best.heuristic_weights in grid
		assert all("confidence_brier" in t for t in trials)

	def test_prefers_better_calibrated_weights(self, tmp_path):
		# A line only the fallback stage can read, labelled correct.
		path = tmp_path / "corpus.jsonl"
		path.write_text(
			'{"id": "h1", "text": "4901 りんご 2 150", "items": [{"name": "りんご", "unit_price": "150"}]}\n',
			encoding="utf-8",
		)
		receipts = load_labeled_receipts(path)
		low = replace(HeuristicWeights(), base=0.0, ceiling=0.2)
		high = replace(HeuristicWeights(), base=0.4, ceiling=0.6)
		best, _ = tune_heuristic_weights(receipts, grid=[low, high])
		assert best.heuristic_weights == high
