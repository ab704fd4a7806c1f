from __future__ import annotations

import statistics
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from receipt_ocr.coordinator import CoordinationResult, LineState
from receipt_ocr.normalizer import LineKind, NormalizedLine, RawDocument
from receipt_ocr.patterns import PatternLibrary, detect_vendor
from receipt_ocr.postprocess import decimal_to_str
from receipt_ocr.schemas import DiagnosticReport
from receipt_ocr.stages.base import HEURISTIC
from receipt_ocr.utils.config import PipelineConfig
from receipt_ocr.utils.text import char_class_histogram, detect_language_bucket
from receipt_ocr.validator import (
	ARITHMETIC_MISMATCH,
	DUPLICATE_ITEM,
	NOISY_NAME,
	ValidationOutcome,
)


TOO_LONG = 100
TOO_SHORT = 2
DIGIT_HEAVY = 0.8


def suspicious_reason(text: str) -> Optional[str]:
	if not text:
		return None
	if len(text) > TOO_LONG:
		return "too-long"
	if len(text) < TOO_SHORT:
		return "too-short"
	chars = [c for c in text if not c.isspace()]
	if chars and not any(c.isalnum() for c in chars):
		return "symbols-only"
	digits = sum(1 for c in chars if c.isdigit())
	if chars and digits / len(chars) > DIGIT_HEAVY:
		return "mostly-digits"
	return None


def text_stats(lines: Sequence[NormalizedLine]) -> Dict[str, Any]:
	texts = [ln.text for ln in lines]
	non_empty = [t for t in texts if t]
	suspicious = []
	for ln in lines:
		reason = suspicious_reason(ln.text)
		if reason:
			suspicious.append({"index": ln.index, "reason": reason, "text": ln.text})
	kinds = {k.value: 0 for k in LineKind}
	for ln in lines:
		kinds[ln.kind.value] += 1
	return {
		"line_count": len(lines),
		"non_empty_lines": len(non_empty),
		"kind_counts": kinds,
		"fused_line_groups": sum(1 for ln in lines if len(ln.source_indices) > 1),
		"avg_line_length": float(round(sum(len(t) for t in non_empty) / len(non_empty), 2)) if non_empty else 0.0,
		"char_histogram": char_class_histogram(texts),
		"script": detect_language_bucket(texts),
		"suspicious_line_count": len(suspicious),
		"suspicious_lines": suspicious,
	}


def pattern_stats(
	document: RawDocument,
	lines: Sequence[NormalizedLine],
	coordination: CoordinationResult,
	library: PatternLibrary,
) -> Dict[str, Any]:
	stages: Dict[str, Dict[str, int]] = {}
	hits: Dict[str, Dict[str, int]] = {}
	for res in coordination.resolutions:
		for a in res.attempts:
			s = stages.setdefault(a.stage, {"attempted": 0, "matched": 0, "accepted": 0, "rejected": 0, "abstained": 0})
			s["attempted"] += 1
			s[a.outcome] += 1
			if a.candidate is not None:
				s["matched"] += 1
				h = hits.setdefault(a.candidate.pattern_id, {"produced": 0, "accepted": 0})
				h["produced"] += 1
				if a.accepted:
					h["accepted"] += 1
	detected = detect_vendor([ln.text for ln in lines], library)
	return {
		"vendor_hint": document.vendor_hint,
		"vendor_known": library.knows_vendor(document.vendor_hint) if document.vendor_hint else False,
		"detected_vendors": [d.as_log_dict() for d in detected],
		"library_version": library.version,
		"patterns_considered": list(coordination.pattern_ids),
		"all_stages_collected": bool(coordination.collected_all),
		"stages": stages,
		"pattern_hits": {k: hits[k] for k in sorted(hits)},
	}


def _price_stats(values: List[Decimal]) -> Dict[str, Optional[str]]:
	if not values:
		return {"min": None, "max": None, "mean": None, "median": None}
	mean = (sum(values) / len(values)).quantize(Decimal("0.01"))
	return {
		"min": decimal_to_str(min(values)),
		"max": decimal_to_str(max(values)),
		"mean": decimal_to_str(mean),
		"median": decimal_to_str(statistics.median(values)),
	}


def result_stats(
	lines: Sequence[NormalizedLine],
	coordination: CoordinationResult,
	outcome: ValidationOutcome,
) -> Dict[str, Any]:
	items = outcome.items
	by_stage: Dict[str, int] = {}
	for it in items:
		by_stage[it.stage] = by_stage.get(it.stage, 0) + 1
	anomaly_counts: Dict[str, int] = {}
	for a in outcome.anomalies:
		anomaly_counts[a.code] = anomaly_counts.get(a.code, 0) + 1
	item_lines = [ln for ln in lines if ln.is_item]
	item_indices = {ln.index for ln in item_lines}
	unresolved = sum(1 for r in coordination.resolutions if r.state is LineState.UNRESOLVED and r.line_index in item_indices)
	return {
		"item_count": len(items),
		"candidate_item_lines": len(item_lines),
		"unresolved_item_lines": unresolved,
		"items_with_name": sum(1 for it in items if it.name),
		"items_with_price": sum(1 for it in items if it.unit_price is not None or it.subtotal is not None),
		"items_with_quantity": sum(1 for it in items if it.quantity is not None),
		"document_confidence": float(outcome.confidence),
		"quality_score": float(outcome.quality_score),
		"stage_breakdown": {k: by_stage[k] for k in sorted(by_stage)},
		"anomaly_counts": {k: anomaly_counts[k] for k in sorted(anomaly_counts)},
		"anomalies": [a.model_dump(mode="json") for a in outcome.anomalies],
		"corrections": [c.as_log_dict() for c in outcome.corrections],
		"currency": outcome.currency,
		"unit_price_stats": _price_stats([it.unit_price for it in items if it.unit_price is not None]),
	}


def suggestions(
	texts: Dict[str, Any],
	patterns: Dict[str, Any],
	results: Dict[str, Any],
	config: PipelineConfig,
) -> List[str]:
	"""Free-text improvement hints derived from the three stat blocks."""
	out: List[str] = []
	n = int(results["item_count"])
	codes = results["anomaly_counts"]
	if n == 0:
		out.append("No items were extracted; check that the text covers the item section of the receipt.")
	if texts["line_count"] and texts["suspicious_line_count"] / texts["line_count"] > 0.3:
		out.append("Over 30% of lines look corrupted; rescan with better lighting or higher resolution.")
	if n and (n - int(results["items_with_price"])) / n > 0.5:
		out.append("More than half of the items have no price; the layout may put prices on a separate column or line.")
	if n and results["document_confidence"] < config.confidence_floor:
		out.append("Confidence is low; review the items manually or pass a vendor hint.")
	if n and results["stage_breakdown"].get(HEURISTIC, 0) / n > 0.5:
		out.append("Most items came from the heuristic fallback; consider adding a pattern for this receipt layout.")
	if codes.get(ARITHMETIC_MISMATCH):
		out.append("Some line totals disagree with unit price x quantity; check for misread digits.")
	if codes.get(NOISY_NAME):
		out.append("Item names contain many symbols or only digits; OCR quality is likely poor.")
	if codes.get(DUPLICATE_ITEM):
		out.append("Repeated items found; check whether the same item really appears on several lines.")
	detected = patterns.get("detected_vendors") or []
	if detected and not patterns.get("vendor_hint") and detected[0]["score"] >= config.vendor_detect_min_score:
		v = detected[0]["vendor"]
		out.append(f"Layout resembles {v}; pass vendor_hint={v!r} to use its patterns.")
	return out


def build_report(
	document: RawDocument,
	lines: Sequence[NormalizedLine],
	coordination: CoordinationResult,
	outcome: ValidationOutcome,
	library: PatternLibrary,
	config: Optional[PipelineConfig] = None,
) -> DiagnosticReport:
	"""Assemble diagnostics for one run. Reads its inputs only; same inputs give the same report."""
	cfg = config or PipelineConfig()
	ts = text_stats(lines)
	ps = pattern_stats(document, lines, coordination, library)
	rs = result_stats(lines, coordination, outcome)
	by_index = {ln.index: ln for ln in lines}
	traces = []
	for res in coordination.resolutions:
		ln = by_index.get(res.line_index)
		trace = res.as_log_dict()
		trace["text"] = ln.text if ln else ""
		trace["kind"] = ln.kind.value if ln else None
		traces.append(trace)
	return DiagnosticReport(
		text_stats=ts,
		pattern_stats=ps,
		result_stats=rs,
		suggestions=suggestions(ts, ps, rs, cfg),
		line_traces=traces,
	)


def render_text_report(report: DiagnosticReport) -> str:
	"""Human-readable summary of a diagnostic report."""
	ts, ps, rs = report.text_stats, report.pattern_stats, report.result_stats
	out: List[str] = []
	out.append("=== Receipt extraction report ===")
	out.append(
		f"Lines: {ts.get('line_count', 0)} (items {ts.get('kind_counts', {}).get(LineKind.ITEM.value, 0)}, "
		f"headers {ts.get('kind_counts', {}).get(LineKind.HEADER.value, 0)}, "
		f"noise {ts.get('kind_counts', {}).get(LineKind.NOISE.value, 0)})"
	)
	out.append(f"Suspicious lines: {ts.get('suspicious_line_count', 0)}")
	hist = ts.get("char_histogram", {})
	out.append("Characters: " + ", ".join(f"{k}={v}" for k, v in hist.items()))
	out.append("")
	out.append(f"Vendor hint: {ps.get('vendor_hint') or '-'}")
	for d in ps.get("detected_vendors", [])[:3]:
		out.append(f"  detected {d['vendor']} score={d['score']:.2f}")
	for stage, s in ps.get("stages", {}).items():
		out.append(
			f"Stage {stage}: attempted={s['attempted']} accepted={s['accepted']} "
			f"rejected={s['rejected']} abstained={s['abstained']}"
		)
	out.append("")
	out.append(
		f"Items: {rs.get('item_count', 0)}  confidence={rs.get('document_confidence', 0.0):.2f}  "
		f"quality={rs.get('quality_score', 0.0):.2f}"
	)
	for code, count in rs.get("anomaly_counts", {}).items():
		out.append(f"  anomaly {code}: {count}")
	for c in rs.get("corrections", []):
		out.append(f"  corrected line {c['line_index']} {c['field']} = {c['value']}")
	if report.suggestions:
		out.append("")
		out.append("Suggestions:")
		for s in report.suggestions:
			out.append(f"  - {s}")
	return "\n".join(out)
