from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from receipt_ocr.normalizer import NormalizedLine
from receipt_ocr.patterns import Pattern, PatternLibrary
from receipt_ocr.stages.base import FLEXIBLE, HEURISTIC, STRICT, MatchCandidate, StageMatcher
from receipt_ocr.stages.flexible import FlexibleMatcher
from receipt_ocr.stages.heuristic import HeuristicMatcher
from receipt_ocr.stages.strict import StrictMatcher
from receipt_ocr.utils.config import PipelineConfig


class LineState(str, Enum):
	PENDING = "pending"
	STRICT_ATTEMPTED = "strict-attempted"
	FLEXIBLE_ATTEMPTED = "flexible-attempted"
	HEURISTIC_ATTEMPTED = "heuristic-attempted"
	RESOLVED = "resolved"
	UNRESOLVED = "unresolved"


_ATTEMPTED = {
	STRICT: LineState.STRICT_ATTEMPTED.value,
	FLEXIBLE: LineState.FLEXIBLE_ATTEMPTED.value,
	HEURISTIC: LineState.HEURISTIC_ATTEMPTED.value,
}


def attempted_state(stage: StageMatcher) -> str:
	# Extra stages plugged into the chain get a state of the same shape.
	return _ATTEMPTED.get(stage.name, f"{stage.name}-attempted")


@dataclass(frozen=True)
class StageAttempt:
	stage: str
	candidate: Optional[MatchCandidate]
	accepted: bool
	# False when the attempt only ran to feed diagnostics
	in_cascade: bool = True

	@property
	def outcome(self) -> str:
		if self.candidate is None:
			return "abstained"
		return "accepted" if self.accepted else "rejected"

	def as_log_dict(self) -> Dict[str, object]:
		return {
			"stage": self.stage,
			"outcome": self.outcome,
			"in_cascade": bool(self.in_cascade),
			"candidate": self.candidate.as_log_dict() if self.candidate else None,
		}


@dataclass(frozen=True)
class LineResolution:
	line_index: int
	state: LineState
	path: Tuple[str, ...]
	attempts: Tuple[StageAttempt, ...] = ()
	accepted: Optional[MatchCandidate] = None

	def as_log_dict(self) -> Dict[str, object]:
		return {
			"line_index": int(self.line_index),
			"state": self.state.value,
			"path": list(self.path),
			"attempts": [a.as_log_dict() for a in self.attempts],
		}


@dataclass(frozen=True)
class CoordinationResult:
	resolutions: Tuple[LineResolution, ...]
	vendor_hint: Optional[str]
	pattern_ids: Tuple[str, ...]
	collected_all: bool

	@property
	def candidates(self) -> Tuple[MatchCandidate, ...]:
		"""Accepted candidates in original line order."""
		return tuple(r.accepted for r in self.resolutions if r.accepted is not None)

	@property
	def confidence(self) -> float:
		return mean_confidence(self.candidates)

	@property
	def all_candidates(self) -> Tuple[MatchCandidate, ...]:
		return tuple(a.candidate for r in self.resolutions for a in r.attempts if a.candidate is not None)


def mean_confidence(candidates: Sequence[MatchCandidate]) -> float:
	"""Arithmetic mean of item confidences; 0.0 for an empty set."""
	if not candidates:
		return 0.0
	return float(round(sum(c.confidence for c in candidates) / len(candidates), 4))


def build_stage_chain(config: Optional[PipelineConfig] = None) -> List[StageMatcher]:
	cfg = config or PipelineConfig()
	return [
		StrictMatcher(cfg.strict_threshold, class_cap=cfg.strict_class_cap),
		FlexibleMatcher(
			cfg.flexible_threshold,
			class_cap=cfg.flexible_class_cap,
			partial_penalty=cfg.partial_match_penalty,
		),
		HeuristicMatcher(cfg.heuristic_threshold, weights=cfg.heuristic_weights),
	]


class StageCoordinator:
	"""Per-line cascade over an ordered chain of stages.

	The first candidate that clears its stage threshold wins; the last stage
	in the chain is the fallback and its candidate is taken as is. Lines are
	independent, so they may be resolved on a thread pool.
	"""

	def __init__(self, stages: Sequence[StageMatcher], *, max_workers: int = 1) -> None:
		if not stages:
			raise ValueError("stage chain must not be empty")
		self.stages: Tuple[StageMatcher, ...] = tuple(stages)
		self.max_workers = max(1, int(max_workers))

	@classmethod
	def from_config(cls, config: Optional[PipelineConfig] = None) -> "StageCoordinator":
		cfg = config or PipelineConfig()
		return cls(build_stage_chain(cfg), max_workers=cfg.max_workers)

	def resolve_line(self, line: NormalizedLine, patterns: Sequence[Pattern], *, collect_all: bool = False) -> LineResolution:
		if not line.is_item:
			return LineResolution(
				line_index=line.index,
				state=LineState.UNRESOLVED,
				path=(LineState.PENDING.value, LineState.UNRESOLVED.value),
			)

		path: List[str] = [LineState.PENDING.value]
		attempts: List[StageAttempt] = []
		accepted: Optional[MatchCandidate] = None
		last = len(self.stages) - 1
		for i, stage in enumerate(self.stages):
			if accepted is not None and not collect_all:
				break
			in_cascade = accepted is None
			cand = stage.attempt(line, patterns)
			ok = False
			if in_cascade:
				path.append(attempted_state(stage))
				ok = cand is not None and (stage.accepts(cand) or i == last)
				if ok:
					accepted = cand
			attempts.append(StageAttempt(stage=stage.name, candidate=cand, accepted=ok, in_cascade=in_cascade))

		state = LineState.RESOLVED if accepted is not None else LineState.UNRESOLVED
		path.append(state.value)
		return LineResolution(
			line_index=line.index,
			state=state,
			path=tuple(path),
			attempts=tuple(attempts),
			accepted=accepted,
		)

	def coordinate(
		self,
		lines: Sequence[NormalizedLine],
		library: PatternLibrary,
		vendor_hint: Optional[str] = None,
		*,
		collect_all: bool = False,
	) -> CoordinationResult:
		patterns = library.lookup(vendor_hint)
		items = [ln for ln in lines if ln.is_item]

		if self.max_workers > 1 and len(items) > 1:
			with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
				futures = [executor.submit(self.resolve_line, ln, patterns, collect_all=collect_all) for ln in lines]
				resolutions = [f.result() for f in concurrent.futures.as_completed(futures)]
		else:
			resolutions = [self.resolve_line(ln, patterns, collect_all=collect_all) for ln in lines]

		# Completion order is arbitrary on the pool path.
		resolutions.sort(key=lambda r: r.line_index)
		return CoordinationResult(
			resolutions=tuple(resolutions),
			vendor_hint=vendor_hint,
			pattern_ids=tuple(p.id for p in patterns),
			collected_all=collect_all,
		)


def coordinate(
	lines: Sequence[NormalizedLine],
	library: PatternLibrary,
	vendor_hint: Optional[str] = None,
	config: Optional[PipelineConfig] = None,
	*,
	collect_all: bool = False,
) -> CoordinationResult:
	return StageCoordinator.from_config(config).coordinate(lines, library, vendor_hint, collect_all=collect_all)
