"""
CLI smoke tests: argument handling and output formats.
"""

import io
import json
import sys

from receipt_ocr.executable import main


def _run(monkeypatch, *args):
	monkeypatch.setattr(sys, "argv", ["receipt-ocr", *args])
	return main()


class TestCLI:

	def test_json_output(self, monkeypatch, capsys, tmp_path):
		src = tmp_path / "receipt.txt"
		src.write_text("牛乳 ¥178\n合計 ¥178\n", encoding="utf-8")
		out = tmp_path / "out" / "result.json"
		assert _run(monkeypatch, "--text-file", str(src), "--out", str(out)) == 0
		printed = json.loads(capsys.readouterr().out)
		assert printed["items"][0]["name"] == "牛乳"
		assert printed["items"][0]["unit_price"] == "178"
		assert json.loads(out.read_text(encoding="utf-8")) == printed

	def test_vendor_and_debug(self, monkeypatch, capsys, tmp_path):
		src = tmp_path / "receipt.txt"
		src.write_text("4901 りんご 2 @ 150 300\n", encoding="utf-8")
		assert _run(monkeypatch, "--text-file", str(src), "--vendor", "A-Mart", "--debug") == 0
		printed = json.loads(capsys.readouterr().out)
		assert printed["vendor_hint"] == "A-Mart"
		assert printed["items"][0]["pattern_id"] == "amart-code-qty-at"
		assert "debug" in printed

	def test_text_report(self, monkeypatch, capsys, tmp_path):
		src = tmp_path / "receipt.txt"
		src.write_text("キャベツ 1個 ¥198\n", encoding="utf-8")
		assert _run(monkeypatch, "--text-file", str(src), "--text") == 0
		assert capsys.readouterr().out.startswith("=== Receipt extraction report ===")

	def test_stdin(self, monkeypatch, capsys):
		monkeypatch.setattr(sys, "stdin", io.StringIO("牛乳 ¥178\n"))
		assert _run(monkeypatch, "--text-file", "-") == 0
		assert json.loads(capsys.readouterr().out)["items"][0]["name"] == "牛乳"

	def test_missing_file(self, monkeypatch, capsys, tmp_path):
		assert _run(monkeypatch, "--text-file", str(tmp_path / "nope.txt")) == 2
		assert "cannot read" in capsys.readouterr().err

	def test_bad_pattern_file(self, monkeypatch, capsys, tmp_path):
		src = tmp_path / "receipt.txt"
		src.write_text("牛乳 ¥178\n", encoding="utf-8")
		patterns = tmp_path / "patterns.json"
		patterns.write_text(json.dumps({"patterns": [{"id": "x", "confidence_class": "strict", "expression": "(?P<oops>.)"}]}), encoding="utf-8")
		assert _run(monkeypatch, "--text-file", str(src), "--patterns", str(patterns)) == 2
		assert "bad pattern file" in capsys.readouterr().err
