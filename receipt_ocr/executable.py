from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from receipt_ocr.debug_report import render_text_report
from receipt_ocr.errors import PatternDefinitionError
from receipt_ocr.pipeline import extract
from receipt_ocr.utils.config import PipelineConfig
from receipt_ocr.utils.config_io import load_config_json


def _read_text(path: str) -> str:
	if path == "-":
		return sys.stdin.read()
	return Path(path).read_text(encoding="utf-8")


def main() -> int:
	p = argparse.ArgumentParser(description="Extract line items from receipt OCR text")
	p.add_argument("--text-file", required=True, help="Path to a UTF-8 OCR text file, or - for stdin")
	p.add_argument("--vendor", default=None, help="Vendor hint (e.g. A-Mart) to enable its patterns")
	p.add_argument("--debug", action="store_true", help="Include the diagnostic report in the output")
	p.add_argument("--text", action="store_true", help="Print the diagnostic report as text instead of JSON")
	p.add_argument("--confidence-floor", type=float, default=None, help="Override the low-quality confidence floor")
	p.add_argument(
		"--config",
		default="",
		help="Optional JSON config (see receipt_ocr.utils.config). CLI flags override it.",
	)
	p.add_argument("--patterns", default="", help="Optional JSON pattern file extending the built-in patterns")
	p.add_argument("--workers", type=int, default=None, help="Resolve lines on a thread pool of this size")
	p.add_argument("--log-path", default="", help="Append JSON-lines logs to this file")
	p.add_argument("--out", default="", help="Also write the JSON result to this path")
	args = p.parse_args()

	cfg = load_config_json(Path(args.config)) if args.config else PipelineConfig()
	# CLI overrides
	if args.patterns:
		cfg = replace(cfg, pattern_file=Path(args.patterns))
	if args.workers is not None:
		cfg = replace(cfg, max_workers=int(args.workers))
	if args.log_path:
		cfg = replace(cfg, log_path=Path(args.log_path))

	try:
		raw = _read_text(args.text_file)
	except OSError as e:
		print(f"[error] cannot read {args.text_file}: {e}", file=sys.stderr)
		return 2

	options = {
		"vendor_hint": args.vendor,
		"debug_mode": bool(args.debug or args.text),
		"confidence_floor": args.confidence_floor,
	}
	try:
		result = extract(raw, options, config=cfg)
	except PatternDefinitionError as e:
		print(f"[error] bad pattern file: {e}", file=sys.stderr)
		return 2

	payload = result.to_dict()
	if args.out:
		out_path = Path(args.out)
		out_path.parent.mkdir(parents=True, exist_ok=True)
		out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

	if args.text and result.debug is not None:
		print(render_text_report(result.debug))
	else:
		print(json.dumps(payload, ensure_ascii=False, indent=2))
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
