from __future__ import annotations

import argparse
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from receipt_ocr.patterns import PatternLibrary
from receipt_ocr.pipeline import extract
from receipt_ocr.schemas import ReceiptItem
from receipt_ocr.utils.config import PipelineConfig
from receipt_ocr.utils.config_io import load_config_json
from receipt_ocr.utils.resources import LabeledItem, LabeledReceipt, load_labeled_receipts
from receipt_ocr.utils.text import normalize_name


NUMERIC_FIELDS = ["unit_price", "quantity", "subtotal"]


def _dec(value: Optional[str]) -> Optional[Decimal]:
	if value in (None, ""):
		return None
	try:
		return Decimal(str(value))
	except InvalidOperation:
		return None


def match_items(
	pred: Sequence[ReceiptItem],
	gold: Sequence[LabeledItem],
	*,
	name_threshold: float = 85.0,
) -> List[Tuple[int, int]]:
	"""Greedy one-to-one pairing of gold items to predictions by fuzzy name similarity."""
	pairs: List[Tuple[int, int]] = []
	used: set = set()
	for gi, g in enumerate(gold):
		gname = normalize_name(g.name)
		best: Optional[Tuple[int, float]] = None
		for pi, p in enumerate(pred):
			if pi in used:
				continue
			score = fuzz.token_set_ratio(gname, normalize_name(p.name or ""))
			if score >= name_threshold and (best is None or score > best[1]):
				best = (pi, float(score))
		if best is not None:
			used.add(best[0])
			pairs.append((gi, best[0]))
	return pairs


def _compare_field(field: str, pred: ReceiptItem, gold: LabeledItem) -> Optional[bool]:
	"""None means skipped (no ground truth for this field)."""
	gv = _dec(getattr(gold, field))
	if gv is None:
		return None
	pv = getattr(pred, field)
	return pv is not None and Decimal(pv) == gv


def _item_correct(pred: ReceiptItem, gold: LabeledItem) -> bool:
	checks = [_compare_field(f, pred, gold) for f in ("unit_price", "subtotal")]
	return all(c is not False for c in checks)


def evaluate_corpus(
	receipts: Sequence[LabeledReceipt],
	config: Optional[PipelineConfig] = None,
	*,
	library: Optional[PatternLibrary] = None,
	name_threshold: float = 85.0,
) -> Dict[str, Any]:
	cfg = config or PipelineConfig()
	gold_total = 0
	pred_total = 0
	matched_total = 0
	field_correct: Dict[str, int] = {f: 0 for f in NUMERIC_FIELDS}
	field_total: Dict[str, int] = {f: 0 for f in NUMERIC_FIELDS}
	stage_counts: Dict[str, int] = {}
	# (confidence, correct?) per predicted item, for calibration
	calib: List[Tuple[float, bool]] = []
	per_doc: List[Dict[str, Any]] = []

	for rec in receipts:
		result = extract(rec.text, {"vendor_hint": rec.vendor_hint}, config=cfg, library=library)
		items = result.items
		pairs = match_items(items, rec.items, name_threshold=name_threshold)
		matched_pred = {pi: gi for gi, pi in pairs}

		for pi, it in enumerate(items):
			stage_counts[it.stage] = stage_counts.get(it.stage, 0) + 1
			gi = matched_pred.get(pi)
			ok = gi is not None and _item_correct(it, rec.items[gi])
			calib.append((float(it.confidence), ok))

		for gi, pi in pairs:
			for f in NUMERIC_FIELDS:
				c = _compare_field(f, items[pi], rec.items[gi])
				if c is None:
					continue
				field_total[f] += 1
				if c:
					field_correct[f] += 1

		gold_total += len(rec.items)
		pred_total += len(items)
		matched_total += len(pairs)
		per_doc.append(
			{
				"id": rec.id,
				"gold_items": len(rec.items),
				"pred_items": len(items),
				"matched": len(pairs),
				"confidence": result.confidence,
				"quality_score": result.quality_score,
				"anomalies": result.anomaly_codes,
			}
		)

	recall = matched_total / gold_total if gold_total else 0.0
	precision = matched_total / pred_total if pred_total else 0.0
	f1 = (2 * precision * recall / (precision + recall)) if (precision + recall) else 0.0
	brier = sum((c - (1.0 if ok else 0.0)) ** 2 for c, ok in calib) / len(calib) if calib else 0.0
	return {
		"receipts": len(receipts),
		"gold_items": gold_total,
		"pred_items": pred_total,
		"matched_items": matched_total,
		"item_recall": float(round(recall, 4)),
		"item_precision": float(round(precision, 4)),
		"item_f1": float(round(f1, 4)),
		"field_accuracy": {
			f: (float(round(field_correct[f] / field_total[f], 4)) if field_total[f] else None) for f in NUMERIC_FIELDS
		},
		"confidence_brier": float(round(brier, 4)),
		"stage_counts": {k: stage_counts[k] for k in sorted(stage_counts)},
		"per_doc": per_doc,
	}


def main() -> int:
	p = argparse.ArgumentParser(description="Evaluate extraction against a labelled receipt corpus")
	p.add_argument("--labels", required=True, help="JSON-lines corpus (id, text, vendor_hint, items)")
	p.add_argument("--config", default="", help="Optional JSON config")
	p.add_argument("--name-threshold", type=float, default=85.0, help="Fuzzy name match threshold (0-100)")
	p.add_argument("--out", default="", help="Optional path for the JSON report")
	args = p.parse_args()

	cfg = load_config_json(Path(args.config)) if args.config else PipelineConfig()
	receipts = load_labeled_receipts(Path(args.labels))
	summary = evaluate_corpus(receipts, cfg, name_threshold=args.name_threshold)
	if args.out:
		out = Path(args.out)
		out.parent.mkdir(parents=True, exist_ok=True)
		out.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")
	print(json.dumps({k: v for k, v in summary.items() if k != "per_doc"}, ensure_ascii=False, indent=2))
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
