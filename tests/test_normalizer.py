"""
Tests for the text normalizer: cleaning, artifact substitution,
line classification and name/price line fusion.
"""

import pytest

from receipt_ocr.normalizer import LineKind, classify_line, clean_line, is_price_only, normalize_text


class TestCleanLine:

	def test_full_width_and_half_width_kana_are_folded(self):
		assert clean_line("ｷｬﾍﾞﾂ　１個　￥１９８") == "キャベツ 1個 ¥198"

	def test_control_characters_are_stripped(self):
		assert clean_line("りんご\x00 \x07198") == "りんご 198"

	def test_leader_dots_collapse(self):
		assert clean_line("キャベツ.......198") == "キャベツ 198"

	def test_backslash_before_digits_reads_as_yen(self):
		assert clean_line("トマト \\198") == "トマト ¥198"

	def test_backslash_kept_for_english_locale(self):
		assert "\\" in clean_line("PATH \\198", locale_hint="en")

	def test_letter_o_between_digits_becomes_zero(self):
		assert clean_line("りんご 1O8") == "りんご 108"

	def test_spaced_thousands_separator(self):
		assert clean_line("牛肉 ¥1, 280") == "牛肉 ¥1,280"


class TestClassification:

	@pytest.mark.parametrize(
		"text",
		["合計 ¥1,280", "小計 ¥980", "TOTAL $12.40", "2024/05/01 12:30", "TEL 03-1234-5678", "お釣り ¥20"],
	)
	def test_header_lines(self, text):
		assert classify_line(text) is LineKind.HEADER

	@pytest.mark.parametrize("text", ["", "*", "***", "4901234567890", "¥198"])
	def test_noise_lines(self, text):
		assert classify_line(text) is LineKind.NOISE

	@pytest.mark.parametrize("text", ["キャベツ 1個 ¥198", "牛乳 ¥178", "BANANA 0.59", "トマト -50"])
	def test_item_lines(self, text):
		assert classify_line(text) is LineKind.ITEM

	def test_name_without_numbers_is_header(self):
		assert classify_line("スーパーマーケット 駅前店") is LineKind.HEADER

	def test_price_only_detection(self):
		assert is_price_only("¥198")
		assert is_price_only("1,280円")
		assert is_price_only("198*")
		assert not is_price_only("りんご 198")


class TestNormalizeText:

	def test_empty_input_returns_empty_list(self):
		assert normalize_text("") == []

	def test_never_discards_lines(self):
		raw = "店名\n\n***\nキャベツ 1個 ¥198\n合計 ¥198"
		lines = normalize_text(raw)
		assert [ln.index for ln in lines] == [0, 1, 2, 3, 4]
		assert [ln.kind for ln in lines] == [
			LineKind.HEADER,
			LineKind.NOISE,
			LineKind.NOISE,
			LineKind.ITEM,
			LineKind.HEADER,
		]

	def test_raw_text_is_kept(self):
		lines = normalize_text("ｷｬﾍﾞﾂ　￥１９８")
		assert lines[0].raw == "ｷｬﾍﾞﾂ　￥１９８"
		assert lines[0].text == "キャベツ ¥198"

	def test_name_line_fused_with_following_price_line(self):
		lines = normalize_text("牛乳\n¥198\nパン 120")
		assert lines[0].kind is LineKind.ITEM
		assert lines[0].text == "牛乳 ¥198"
		assert lines[0].source_indices == (0, 1)
		assert lines[1].kind is LineKind.NOISE
		assert lines[1].merged_into == 0
		assert lines[2].kind is LineKind.ITEM
		assert lines[2].source_indices == (2,)

	def test_header_line_is_not_fused(self):
		lines = normalize_text("合計\n¥198")
		assert lines[0].kind is LineKind.HEADER
		assert lines[1].merged_into is None

	def test_windows_line_endings(self):
		lines = normalize_text("牛乳 ¥178\r\nパン 120\r\n")
		assert [ln.text for ln in lines] == ["牛乳 ¥178", "パン 120"]
