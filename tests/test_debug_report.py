"""
Tests for the diagnostic report produced in debug mode.
"""

from receipt_ocr.coordinator import coordinate
from receipt_ocr.debug_report import build_report, render_text_report, suspicious_reason
from receipt_ocr.normalizer import RawDocument, normalize_text
from receipt_ocr.pipeline import extract
from receipt_ocr.validator import validate_result


class TestDebugReport:

	def test_text_stats(self, receipt_text):
		report = extract(receipt_text, {"debugMode": True}).debug
		ts = report.text_stats
		assert ts["line_count"] == 8
		assert ts["kind_counts"] == {"candidate-item-line": 3, "header-line": 4, "noise-line": 1}
		assert ts["script"] == "ja"
		# The rule line is blanked by cleaning but keeps its slot.
		assert ts["non_empty_lines"] == 7

	def test_every_stage_is_recorded(self, receipt_text):
		report = extract(receipt_text, {"debugMode": True}).debug
		stages = report.pattern_stats["stages"]
		assert set(stages) == {"strict", "flexible", "heuristic"}
		assert all(s["attempted"] == 3 for s in stages.values())
		assert stages["strict"]["accepted"] == 1
		assert stages["flexible"]["accepted"] == 2
		assert report.pattern_stats["all_stages_collected"] is True

	def test_result_stats(self, receipt_text):
		report = extract(receipt_text, {"debugMode": True}).debug
		rs = report.result_stats
		assert rs["item_count"] == 3
		assert rs["stage_breakdown"] == {"flexible": 2, "strict": 1}
		assert rs["anomaly_counts"] == {"invalid-price": 1}
		assert rs["corrections"][0]["field"] == "subtotal"
		assert rs["unit_price_stats"]["max"] == "198"

	def test_line_traces_cover_every_line(self, receipt_text):
		report = extract(receipt_text, {"debugMode": True}).debug
		assert [t["line_index"] for t in report.line_traces] == list(range(8))
		assert report.line_traces[0]["state"] == "unresolved"
		assert report.line_traces[3]["path"][-1] == "resolved"

	def test_same_inputs_same_report(self, library, config, receipt_text):
		lines = normalize_text(receipt_text)
		coordination = coordinate(lines, library, collect_all=True)
		outcome = validate_result(coordination, config)
		doc = RawDocument(content=receipt_text)
		first = build_report(doc, lines, coordination, outcome, library, config)
		second = build_report(doc, lines, coordination, outcome, library, config)
		assert first == second

	def test_empty_input_suggestion(self):
		report = extract("", {"debugMode": True}).debug
		assert report.result_stats["item_count"] == 0
		assert any("No items" in s for s in report.suggestions)

	def test_vendor_suggestion_without_hint(self):
		report = extract("COSTCO WHOLESALE\nE 1234567 KS WATER 9.99 N", {"debugMode": True}).debug
		assert report.pattern_stats["detected_vendors"][0]["vendor"] == "Warehouse"
		assert any("Warehouse" in s for s in report.suggestions)

	def test_no_report_outside_debug_mode(self, receipt_text):
		assert extract(receipt_text).debug is None

	def test_render_text(self, receipt_text):
		report = extract(receipt_text, {"debugMode": True}).debug
		text = render_text_report(report)
		assert text.startswith("=== Receipt extraction report ===")
		assert "Stage strict" in text
		assert "anomaly invalid-price: 1" in text

	def test_suspicious_reasons(self):
		assert suspicious_reason("x" * 120) == "too-long"
		assert suspicious_reason("a") == "too-short"
		assert suspicious_reason("***") == "symbols-only"
		assert suspicious_reason("4901234567890") == "mostly-digits"
		assert suspicious_reason("牛乳 ¥178") is None
		assert suspicious_reason("") is None
