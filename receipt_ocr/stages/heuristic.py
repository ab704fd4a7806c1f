from __future__ import annotations

import re
from typing import Dict, Optional, Sequence, Tuple

from receipt_ocr.normalizer import NormalizedLine
from receipt_ocr.patterns import Pattern
from receipt_ocr.postprocess import clean_name, parse_price, parse_quantity
from receipt_ocr.stages.base import HEURISTIC, MatchCandidate, StageMatcher, build_candidate
from receipt_ocr.utils.config import HeuristicWeights
from receipt_ocr.utils.text import looks_like_product, symbol_ratio


_NUM = r"[-−]?\d{1,3}(?:,\d{3})*(?:\d+)?(?:\.\d{1,2})?"

TRAILING_PRICE_RE = re.compile(rf"(?P<cur>[¥$])?\s*(?P<price>{_NUM})\s*(?P<yen>円)?\s*[*※軽外内T]?\s*$")
AT_UNIT_RE = re.compile(rf"(?<![\d.,])(?P<qty>\d{{1,3}})\s*@\s*(?P<cur>[¥$])?\s*(?P<unit>{_NUM})")
QTY_RES: Tuple[re.Pattern, ...] = (
	re.compile(r"(?i)(?<![\d.,])(?P<qty>\d{1,3})\s*(?:個|点|本|袋|パック|pcs|pc|ea)(?![A-Za-z])"),
	re.compile(r"(?i)(?<![A-Za-z])[x×*]\s*(?P<qty>\d{1,3})(?![\d.,])"),
	re.compile(r"(?i)(?<![\d.,])(?P<qty>\d{1,3})\s*[x×](?![A-Za-z])"),
	re.compile(r"(?i)\bqty\s*(?P<qty>\d{1,3})(?![\d.,])"),
)
ITEM_CODE_RE = re.compile(r"^(?:E\s+)?\d{4,}\s+")


def split_line(text: str) -> Dict[str, object]:
	"""Rule-free reading of an item line.

	The trailing amount is the price, a multiplication-like token is the
	quantity, and whatever text remains is the name. With an explicit
	"qty @ unit" the trailing amount is the line total instead.
	"""
	rest = text
	values: Dict[str, object] = {"currency": False}

	price = None
	m = TRAILING_PRICE_RE.search(rest)
	if m and rest[: m.start()].strip():
		price = parse_price(m.group("price"))
		if price is not None:
			values["currency"] = bool(m.group("cur") or m.group("yen"))
			rest = rest[: m.start()]

	at = AT_UNIT_RE.search(rest)
	if at:
		values["quantity"] = parse_quantity(at.group("qty"))
		values["unit_price"] = parse_price(at.group("unit"))
		values["currency"] = bool(values["currency"] or at.group("cur"))
		if price is not None:
			values["subtotal"] = price
		rest = rest[: at.start()] + " " + rest[at.end():]
	else:
		if price is not None:
			values["unit_price"] = price
		for rx in QTY_RES:
			q = rx.search(rest)
			if q:
				values["quantity"] = parse_quantity(q.group("qty"))
				rest = rest[: q.start()] + " " + rest[q.end():]
				break

	rest = ITEM_CODE_RE.sub("", rest.strip())
	values["name"] = clean_name(rest)
	return values


class HeuristicMatcher(StageMatcher):
	"""Terminal fallback: always yields a candidate for a candidate-item line."""

	name = HEURISTIC
	terminal = True

	def __init__(self, threshold: float = 0.0, *, weights: Optional[HeuristicWeights] = None) -> None:
		super().__init__(threshold)
		self.weights = weights or HeuristicWeights()

	def score(self, values: Dict[str, object]) -> float:
		w = self.weights
		name = values.get("name") or ""
		conf = w.base
		if values.get("unit_price") is not None or values.get("subtotal") is not None:
			conf += w.price_found
		if name and w.name_min_len <= len(str(name)) <= w.name_max_len:
			conf += w.name_length
		if looks_like_product(str(name)):
			conf += w.product_like
		if values.get("quantity") is not None:
			conf += w.quantity_found
		if values.get("currency"):
			conf += w.currency_token
		conf -= w.symbol_penalty * symbol_ratio(str(name))
		return max(w.floor, min(w.ceiling, conf))

	def attempt(self, line: NormalizedLine, patterns: Sequence[Pattern]) -> Optional[MatchCandidate]:
		if not line.is_item:
			return None
		values = split_line(line.text)
		conf = self.score(values)
		return build_candidate(line, stage=self.name, pattern_id=HEURISTIC, confidence=conf, values=values)
