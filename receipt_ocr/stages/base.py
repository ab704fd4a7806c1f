from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Sequence, Tuple

from receipt_ocr.normalizer import NormalizedLine
from receipt_ocr.patterns import GROUP_FIELDS, Pattern
from receipt_ocr.postprocess import clean_name, clean_str, decimal_to_str, parse_price, parse_quantity


STRICT = "strict"
FLEXIBLE = "flexible"
HEURISTIC = "heuristic"

NUMERIC_FIELDS = ("unit_price", "quantity", "subtotal")
RECORD_FIELDS = ("name",) + NUMERIC_FIELDS + ("category_hint",)


def clamp_confidence(value: float) -> float:
	return float(round(max(0.0, min(1.0, float(value))), 4))


@dataclass(frozen=True)
class MatchCandidate:
	line_index: int
	stage: str
	pattern_id: str
	confidence: float
	name: Optional[str] = None
	unit_price: Optional[Decimal] = None
	quantity: Optional[Decimal] = None
	subtotal: Optional[Decimal] = None
	category_hint: Optional[str] = None
	raw_text: str = ""

	def __post_init__(self) -> None:
		object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

	@property
	def filled_fields(self) -> Tuple[str, ...]:
		return tuple(f for f in RECORD_FIELDS if getattr(self, f) is not None)

	@property
	def has_price(self) -> bool:
		return self.unit_price is not None or self.subtotal is not None

	def as_log_dict(self) -> Dict[str, object]:
		return {
			"line_index": int(self.line_index),
			"stage": self.stage,
			"pattern_id": self.pattern_id,
			"confidence": float(self.confidence),
			"name": self.name,
			"unit_price": decimal_to_str(self.unit_price),
			"quantity": decimal_to_str(self.quantity),
			"subtotal": decimal_to_str(self.subtotal),
			"category_hint": self.category_hint,
		}


def extract_fields(m: re.Match, pattern: Pattern) -> Dict[str, object]:
	"""Parse the named groups of a match into record values; unparseable values become None."""
	values: Dict[str, object] = {}
	for group, raw in m.groupdict().items():
		f = GROUP_FIELDS.get(group)
		if f is None or raw is None:
			continue
		if f == "name":
			v: object = clean_name(raw)
		elif f == "quantity":
			v = parse_quantity(raw)
		elif f in ("unit_price", "subtotal"):
			v = parse_price(raw)
		else:
			v = clean_str(raw)
		if v is not None and values.get(f) is None:
			values[f] = v
	if values.get("category_hint") is None and pattern.category_hint:
		values["category_hint"] = pattern.category_hint
	return values


def optional_fill_ratio(values: Dict[str, object], pattern: Pattern) -> float:
	"""Share of the pattern's optional fields actually filled; 1.0 when it has none."""
	optional = pattern.optional_fields
	if not optional:
		return 1.0
	filled = sum(1 for f in optional if values.get(f) is not None)
	return float(filled) / float(len(optional))


def build_candidate(
	line: NormalizedLine,
	*,
	stage: str,
	pattern_id: str,
	confidence: float,
	values: Dict[str, object],
) -> MatchCandidate:
	return MatchCandidate(
		line_index=line.index,
		stage=stage,
		pattern_id=pattern_id,
		confidence=confidence,
		name=values.get("name"),  # type: ignore[arg-type]
		unit_price=values.get("unit_price"),  # type: ignore[arg-type]
		quantity=values.get("quantity"),  # type: ignore[arg-type]
		subtotal=values.get("subtotal"),  # type: ignore[arg-type]
		category_hint=values.get("category_hint"),  # type: ignore[arg-type]
		raw_text=line.text,
	)


def pick_best(current: Optional[MatchCandidate], new: MatchCandidate) -> MatchCandidate:
	# Earlier patterns win ties so vendor-specific rules keep precedence.
	if current is None or new.confidence > current.confidence:
		return new
	return current


class StageMatcher(ABC):
	"""One step of the extraction cascade.

	`attempt` returns a candidate for a single line or None when the stage
	cannot say anything about it. Acceptance against `threshold` is the
	coordinator's decision.
	"""

	name: str = ""
	terminal: bool = False

	def __init__(self, threshold: float) -> None:
		self.threshold = float(threshold)

	@abstractmethod
	def attempt(self, line: NormalizedLine, patterns: Sequence[Pattern]) -> Optional[MatchCandidate]:
		raise NotImplementedError

	def accepts(self, candidate: Optional[MatchCandidate]) -> bool:
		if candidate is None:
			return False
		return self.terminal or candidate.confidence >= self.threshold

	def run(self, lines: Sequence[NormalizedLine], patterns: Sequence[Pattern]) -> Dict[int, MatchCandidate]:
		"""Attempt every candidate-item line; keyed by line index."""
		out: Dict[int, MatchCandidate] = {}
		for ln in lines:
			if not ln.is_item:
				continue
			cand = self.attempt(ln, patterns)
			if cand is not None:
				out[ln.index] = cand
		return out

	def __repr__(self) -> str:
		return f"{type(self).__name__}(threshold={self.threshold})"
