from __future__ import annotations

from typing import Optional, Sequence

from receipt_ocr.normalizer import NormalizedLine
from receipt_ocr.patterns import ConfidenceClass, Pattern
from receipt_ocr.stages.base import FLEXIBLE, MatchCandidate, StageMatcher, build_candidate, extract_fields, optional_fill_ratio, pick_best


# Weight of the mandatory (name, price) fill vs. the optional fill.
MANDATORY_WEIGHT = 0.7
OPTIONAL_WEIGHT = 0.3


class FlexibleMatcher(StageMatcher):
	"""Partial matching: patterns may hit anywhere in the line and the name may be missing.

	Strict-class patterns are also tried here (found inside the line rather
	than spanning it) with a penalty. The score is capped by the flexible
	class cap, so this stage never reaches the strict threshold.
	"""

	name = FLEXIBLE

	def __init__(self, threshold: float = 0.5, *, class_cap: float = 0.75, partial_penalty: float = 0.9) -> None:
		super().__init__(threshold)
		self.class_cap = float(class_cap)
		self.partial_penalty = float(partial_penalty)

	def score(self, values: dict, pattern: Pattern) -> float:
		mandatory = (1 if values.get("name") else 0) + 1
		fill = MANDATORY_WEIGHT * (mandatory / 2.0) + OPTIONAL_WEIGHT * optional_fill_ratio(values, pattern)
		conf = min(pattern.ceiling, self.class_cap) * fill
		if pattern.confidence_class is ConfidenceClass.STRICT:
			conf *= self.partial_penalty
		return conf

	def attempt(self, line: NormalizedLine, patterns: Sequence[Pattern]) -> Optional[MatchCandidate]:
		if not line.is_item:
			return None
		best: Optional[MatchCandidate] = None
		for p in patterns:
			if p.confidence_class is ConfidenceClass.HEURISTIC:
				continue
			m = p.regex.search(line.text)
			if m is None:
				continue
			values = extract_fields(m, p)
			if values.get("unit_price") is None and values.get("subtotal") is None:
				continue
			conf = self.score(values, p)
			best = pick_best(best, build_candidate(line, stage=self.name, pattern_id=p.id, confidence=conf, values=values))
		return best
