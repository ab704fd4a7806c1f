"""
Shared fixtures for the receipt extraction tests.

Usage:
	pytest tests/ -v
	pytest tests/test_pipeline.py -v
"""

from decimal import Decimal
from pathlib import Path

import pytest

from receipt_ocr.patterns import default_library
from receipt_ocr.schemas import ReceiptItem
from receipt_ocr.utils.config import PipelineConfig


DATA_DIR = Path(__file__).parent / "data"

# Line used for the vendor-hint comparison: only A-Mart has a strict pattern for it.
AMART_LINE = "4901 りんご 2 @ 150 300"

SUPERMARKET_RECEIPT = "\n".join(
	[
		"スーパーマーケット 駅前店",
		"2024/05/01 18:42",
		"キャベツ 1個 ¥198",
		"牛乳 ¥178",
		"トマト -50",
		"-----------",
		"合計 ¥326",
		"お釣り ¥674",
	]
)


@pytest.fixture(scope="session")
def library():
	return default_library()


@pytest.fixture
def config():
	return PipelineConfig()


@pytest.fixture(scope="session")
def corpus_path():
	return DATA_DIR / "labeled_receipts.jsonl"


@pytest.fixture
def make_item():
	"""Factory for ReceiptItem with sensible defaults."""

	def _make(**kwargs):
		defaults = {
			"name": "りんご",
			"confidence": 0.9,
			"stage": "strict",
			"pattern_id": "test",
			"line_index": 0,
		}
		defaults.update(kwargs)
		for f in ("unit_price", "quantity", "subtotal"):
			if f in defaults and defaults[f] is not None and not isinstance(defaults[f], Decimal):
				defaults[f] = Decimal(str(defaults[f]))
		return ReceiptItem(**defaults)

	return _make


@pytest.fixture
def receipt_text():
	return SUPERMARKET_RECEIPT
