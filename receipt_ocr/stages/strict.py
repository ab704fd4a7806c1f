from __future__ import annotations

from typing import Optional, Sequence

from receipt_ocr.normalizer import NormalizedLine
from receipt_ocr.patterns import ConfidenceClass, Pattern
from receipt_ocr.stages.base import STRICT, MatchCandidate, StageMatcher, build_candidate, extract_fields, optional_fill_ratio, pick_best


class StrictMatcher(StageMatcher):
	"""Whole-line match against strict-class patterns only.

	Name and price are mandatory. A match scores the pattern ceiling scaled
	by how many of its optional fields were filled; no match means abstain.
	"""

	name = STRICT

	def __init__(self, threshold: float = 0.8, *, class_cap: float = 1.0) -> None:
		super().__init__(threshold)
		self.class_cap = float(class_cap)

	def attempt(self, line: NormalizedLine, patterns: Sequence[Pattern]) -> Optional[MatchCandidate]:
		if not line.is_item:
			return None
		best: Optional[MatchCandidate] = None
		for p in patterns:
			if p.confidence_class is not ConfidenceClass.STRICT:
				continue
			m = p.regex.fullmatch(line.text)
			if m is None:
				continue
			values = extract_fields(m, p)
			if not values.get("name") or values.get(p.price_field) is None:
				continue
			conf = min(p.ceiling, self.class_cap) * (0.85 + 0.15 * optional_fill_ratio(values, p))
			best = pick_best(best, build_candidate(line, stage=self.name, pattern_id=p.id, confidence=conf, values=values))
		return best
