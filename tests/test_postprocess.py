from decimal import Decimal

import pytest

from receipt_ocr.postprocess import clean_name, decimal_to_str, parse_price, parse_quantity
from receipt_ocr.utils.text import char_class_histogram, currency_mark, detect_currency, detect_language_bucket, strip_control, symbol_ratio


class TestParsing:

	@pytest.mark.parametrize(
		"raw,expected",
		[
			("198", Decimal("198")),
			("¥1,280", Decimal("1280")),
			("198円", Decimal("198")),
			("198*", Decimal("198")),
			("9.99", Decimal("9.99")),
			("$12.5", Decimal("12.5")),
			("-50", Decimal("-50")),
			("−50", Decimal("-50")),
		],
	)
	def test_parse_price(self, raw, expected):
		assert parse_price(raw) == expected

	@pytest.mark.parametrize("raw", [None, "", "abc", "1,28", "12.345"])
	def test_unparseable_price(self, raw):
		assert parse_price(raw) is None

	def test_parse_quantity(self):
		assert parse_quantity("2") == Decimal("2")
		assert parse_quantity("0.5") == Decimal("0.5")
		assert parse_quantity("x") is None

	def test_clean_name(self):
		assert clean_name("*国産牛こま切れ ") == "国産牛こま切れ"
		assert clean_name("  ") is None

	def test_decimal_to_str(self):
		assert decimal_to_str(Decimal("2.0")) == "2"
		assert decimal_to_str(Decimal("9.90")) == "9.90"
		assert decimal_to_str(None) is None


class TestTextHelpers:

	def test_strip_control_keeps_tabs_and_newlines(self):
		assert strip_control("a\x00b\tc\nd\x7f") == "ab\tc\nd"

	def test_symbol_ratio(self):
		assert symbol_ratio("") == 0.0
		assert symbol_ratio("ab!!") == 0.5

	def test_histogram_keys(self):
		hist = char_class_histogram(["牛乳 A1!"])
		assert hist["kanji"] == 2
		assert hist["latin"] == 1
		assert hist["digit"] == 1
		assert hist["space"] == 1
		assert hist["symbol"] == 1

	def test_language_bucket(self):
		assert detect_language_bucket(["牛乳 ¥178", "キャベツ"]) == "ja"
		assert detect_language_bucket(["MILK 1.99"]) == "en"
		assert detect_language_bucket([]) == "unknown"

	def test_currency_mark(self):
		assert currency_mark("牛乳 ¥178") == "JPY"
		assert currency_mark("198円") == "JPY"
		assert currency_mark("MILK $1.99") == "USD"
		assert currency_mark("BANANA 0.59") is None

	def test_detect_currency(self):
		assert detect_currency(["スーパー", "牛乳 ¥178"]) == "JPY"
		assert detect_currency(["BANANA 0.59", "TOTAL 10.58"]) == "USD"
		assert detect_currency(["りんご 2 @ 150 300"]) == "JPY"
		assert detect_currency([], default="USD") == "USD"
