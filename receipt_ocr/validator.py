from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from receipt_ocr.categorizer import categorize, expiry_hint_days
from receipt_ocr.coordinator import CoordinationResult
from receipt_ocr.postprocess import decimal_to_str
from receipt_ocr.schemas import Anomaly, ReceiptItem
from receipt_ocr.stages.base import MatchCandidate
from receipt_ocr.utils.config import PipelineConfig
from receipt_ocr.utils.text import currency_mark, detect_currency, normalize_name, symbol_ratio


INVALID_PRICE = "invalid-price"
INVALID_QUANTITY = "invalid-quantity"
MISSING_NAME = "missing-name"
NOISY_NAME = "noisy-name"
ARITHMETIC_MISMATCH = "arithmetic-mismatch"
IMPLAUSIBLE_PRICE = "implausible-price"
IMPLAUSIBLE_QUANTITY = "implausible-quantity"
DUPLICATE_ITEM = "duplicate-item"
LOW_QUALITY = "low-quality-extraction"
EMPTY_EXTRACTION = "empty-extraction"
TOO_MANY_ITEMS = "too-many-items"

SEVERITY_WEIGHTS: Dict[str, float] = {"error": 1.0, "warning": 0.5, "info": 0.1}

CENT = Decimal("0.01")
MILLI = Decimal("0.001")


@dataclass(frozen=True)
class Correction:
	line_index: int
	field: str
	value: Decimal
	# Fields the value was derived from
	derived_from: Tuple[str, str]

	def as_log_dict(self) -> Dict[str, object]:
		return {
			"line_index": int(self.line_index),
			"field": self.field,
			"value": decimal_to_str(self.value),
			"derived_from": list(self.derived_from),
		}


@dataclass(frozen=True)
class ValidationOutcome:
	items: Tuple[ReceiptItem, ...]
	anomalies: Tuple[Anomaly, ...]
	confidence: float
	quality_score: float
	corrections: Tuple[Correction, ...] = ()
	currency: str = "JPY"

	@property
	def anomaly_codes(self) -> Tuple[str, ...]:
		return tuple(a.code for a in self.anomalies)


def item_from_candidate(cand: MatchCandidate) -> ReceiptItem:
	"""Map an accepted candidate to an item record, filling a category hint when the pattern gave none."""
	category = cand.category_hint
	if category is None and cand.name:
		key, _ = categorize(cand.name)
		category = key if key != "other" else None
	return ReceiptItem(
		name=cand.name,
		unit_price=cand.unit_price,
		quantity=cand.quantity,
		subtotal=cand.subtotal,
		category_hint=category,
		expiry_hint_days=expiry_hint_days(category),
		confidence=cand.confidence,
		stage=cand.stage,
		pattern_id=cand.pattern_id,
		line_index=cand.line_index,
		raw_text=cand.raw_text,
	)


def _integral_or(value: Decimal, quantum: Decimal) -> Decimal:
	if value == value.to_integral_value():
		return value.to_integral_value()
	return value.quantize(quantum, rounding=ROUND_HALF_UP)


def derive_missing(item: ReceiptItem) -> Optional[Correction]:
	"""Derive the one missing numeric field from the other two when both are positive.

	subtotal = unit_price * quantity is exact; divisions are rounded to cents
	(unit price) or thousandths (quantity) unless they come out integral.
	"""
	unit, qty, sub = item.unit_price, item.quantity, item.subtotal
	missing = [f for f, v in (("unit_price", unit), ("quantity", qty), ("subtotal", sub)) if v is None]
	if len(missing) != 1:
		return None
	field = missing[0]
	if field == "subtotal" and unit > 0 and qty > 0:  # type: ignore[operator]
		return Correction(item.line_index, "subtotal", unit * qty, ("unit_price", "quantity"))  # type: ignore[operator]
	if field == "unit_price" and sub > 0 and qty > 0:  # type: ignore[operator]
		return Correction(item.line_index, "unit_price", _integral_or(sub / qty, CENT), ("subtotal", "quantity"))  # type: ignore[operator]
	if field == "quantity" and sub > 0 and unit > 0:  # type: ignore[operator]
		return Correction(item.line_index, "quantity", _integral_or(sub / unit, MILLI), ("subtotal", "unit_price"))  # type: ignore[operator]
	return None


def _anomaly(code: str, severity: str, message: str, item: Optional[ReceiptItem] = None, field: Optional[str] = None) -> Anomaly:
	return Anomaly(
		code=code,
		severity=severity,
		message=message,
		line_index=item.line_index if item is not None else None,
		field=field,
	)


def check_price_range(item: ReceiptItem, currency: str, config: PipelineConfig) -> List[Anomaly]:
	"""Currency-aware plausibility of the amounts read from the line.

	Yen amounts above the yen ceiling or with a fractional part, dollar
	amounts outside [min_plausible_usd_price, max_plausible_usd_price].
	Computed fields and non-positive values are left to the other checks.
	"""
	out: List[Anomaly] = []
	for f in ("unit_price", "subtotal"):
		v = getattr(item, f)
		if v is None or v <= 0 or f in item.corrected_fields:
			continue
		if currency == "USD":
			hi = Decimal(str(config.max_plausible_usd_price))
			lo = Decimal(str(config.min_plausible_usd_price))
			if v > hi:
				out.append(_anomaly(IMPLAUSIBLE_PRICE, "warning", f"{f} {v} exceeds {hi} USD", item, f))
			elif v < lo:
				out.append(_anomaly(IMPLAUSIBLE_PRICE, "warning", f"{f} {v} is below {lo} USD", item, f))
			continue
		hi = Decimal(str(config.max_plausible_price))
		if v > hi:
			out.append(_anomaly(IMPLAUSIBLE_PRICE, "warning", f"{f} {v} exceeds {hi} JPY", item, f))
		if v != v.to_integral_value():
			out.append(_anomaly(IMPLAUSIBLE_PRICE, "warning", f"{f} {v} has a fractional yen amount", item, f))
	return out


def check_item(item: ReceiptItem, config: PipelineConfig, currency: str = "JPY") -> List[Anomaly]:
	"""Per-item checks; never changes the item."""
	out: List[Anomaly] = []

	if item.unit_price is None and item.subtotal is None:
		out.append(_anomaly(INVALID_PRICE, "error", "no price found", item, "unit_price"))
	if item.unit_price is not None and item.unit_price <= 0:
		out.append(_anomaly(INVALID_PRICE, "error", f"unit price {item.unit_price} is not positive", item, "unit_price"))
	if item.subtotal is not None and item.subtotal <= 0:
		out.append(_anomaly(INVALID_PRICE, "error", f"subtotal {item.subtotal} is not positive", item, "subtotal"))

	if item.quantity is not None and item.quantity <= 0:
		out.append(_anomaly(INVALID_QUANTITY, "error", f"quantity {item.quantity} is not positive", item, "quantity"))

	name = (item.name or "").strip()
	if not name:
		out.append(_anomaly(MISSING_NAME, "error", "item has no name", item, "name"))
	else:
		compact = name.replace(" ", "")
		ratio = symbol_ratio(name)
		if compact.isdigit():
			out.append(_anomaly(NOISY_NAME, "warning", f"name {name!r} is only digits", item, "name"))
		elif ratio >= config.noisy_name_ratio:
			out.append(_anomaly(NOISY_NAME, "warning", f"name {name!r} is {ratio:.0%} symbols", item, "name"))

	unit, qty, sub = item.unit_price, item.quantity, item.subtotal
	if unit is not None and qty is not None and sub is not None and "subtotal" not in item.corrected_fields:
		expected = unit * qty
		tol = max(Decimal(str(config.arithmetic_abs_tolerance)), abs(expected) * Decimal(str(config.arithmetic_tolerance)))
		if abs(sub - expected) > tol:
			out.append(
				_anomaly(
					ARITHMETIC_MISMATCH,
					"warning",
					f"subtotal {sub} differs from {unit} x {qty} = {expected}",
					item,
					"subtotal",
				)
			)

	out.extend(check_price_range(item, currency_mark(item.raw_text) or currency, config))
	if qty is not None and qty > Decimal(str(config.max_plausible_quantity)):
		out.append(_anomaly(IMPLAUSIBLE_QUANTITY, "warning", f"quantity {qty} exceeds {config.max_plausible_quantity:g}", item, "quantity"))
	return out


def find_duplicates(items: Sequence[ReceiptItem]) -> List[Anomaly]:
	"""Same normalized name and same unit price on more than one line (flagged on the later lines)."""
	seen: Dict[Tuple[str, str], int] = {}
	out: List[Anomaly] = []
	for it in items:
		key_name = normalize_name(it.name or "")
		if not key_name or it.unit_price is None:
			continue
		key = (key_name, decimal_to_str(it.unit_price) or "")
		if key in seen:
			out.append(
				_anomaly(
					DUPLICATE_ITEM,
					"info",
					f"same item and price as line {seen[key]}",
					it,
					"name",
				)
			)
		else:
			seen[key] = it.line_index
	return out


def quality_score(item_count: int, item_anomalies: Sequence[Anomaly], confidence: float, *, low_quality: bool) -> float:
	if item_count == 0:
		return 0.0
	weighted = sum(SEVERITY_WEIGHTS.get(a.severity, 0.5) for a in item_anomalies)
	penalty = min(1.0, weighted / float(item_count))
	q = 0.6 * (1.0 - penalty) + 0.4 * float(confidence)
	if low_quality:
		q -= 0.1
	return float(round(max(0.0, min(1.0, q)), 4))


def validate_items(
	items: Sequence[ReceiptItem],
	confidence: float,
	config: Optional[PipelineConfig] = None,
	*,
	confidence_floor: Optional[float] = None,
	currency: Optional[str] = None,
) -> ValidationOutcome:
	"""Check and annotate items; returns new item objects, inputs are left untouched."""
	cfg = config or PipelineConfig()
	floor = cfg.confidence_floor if confidence_floor is None else float(confidence_floor)
	if currency is None:
		currency = detect_currency([it.raw_text for it in items], cfg.default_currency)

	corrected: List[ReceiptItem] = []
	corrections: List[Correction] = []
	for it in items:
		fix = derive_missing(it)
		if fix is not None:
			corrections.append(fix)
			it = it.model_copy(
				update={
					fix.field: fix.value,
					"auto_corrected": True,
					"corrected_fields": list(it.corrected_fields) + [fix.field],
				}
			)
		corrected.append(it)

	item_anomalies: List[Anomaly] = []
	for it in corrected:
		item_anomalies.extend(check_item(it, cfg, currency))
	item_anomalies.extend(find_duplicates(corrected))

	codes_by_line: Dict[int, List[str]] = {}
	for a in item_anomalies:
		codes = codes_by_line.setdefault(a.line_index, [])  # type: ignore[arg-type]
		if a.code not in codes:
			codes.append(a.code)
	annotated = tuple(
		it.model_copy(update={"anomalies": codes_by_line.get(it.line_index, [])}) for it in corrected
	)

	doc_anomalies: List[Anomaly] = []
	low_quality = False
	if not annotated:
		confidence = 0.0
		doc_anomalies.append(_anomaly(EMPTY_EXTRACTION, "error", "no items could be extracted"))
	else:
		if confidence < floor:
			low_quality = True
			doc_anomalies.append(
				_anomaly(LOW_QUALITY, "warning", f"document confidence {confidence:.2f} is below {floor:.2f}")
			)
		if len(annotated) > cfg.max_item_count:
			doc_anomalies.append(
				_anomaly(TOO_MANY_ITEMS, "warning", f"{len(annotated)} items exceed the expected maximum of {cfg.max_item_count}")
			)

	ordered = sorted(item_anomalies, key=lambda a: (a.line_index if a.line_index is not None else -1))
	return ValidationOutcome(
		items=annotated,
		anomalies=tuple(ordered + doc_anomalies),
		confidence=float(confidence),
		quality_score=quality_score(len(annotated), item_anomalies, confidence, low_quality=low_quality),
		corrections=tuple(corrections),
		currency=currency,
	)


def validate_result(
	coordination: CoordinationResult,
	config: Optional[PipelineConfig] = None,
	*,
	confidence_floor: Optional[float] = None,
	currency: Optional[str] = None,
) -> ValidationOutcome:
	items = [item_from_candidate(c) for c in coordination.candidates]
	return validate_items(items, coordination.confidence, config, confidence_floor=confidence_floor, currency=currency)
