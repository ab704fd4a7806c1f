from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class HeuristicWeights:
	"""Additive scoring terms for the rule-free stage.

	Treated as a parameter set: re-tune against a labelled corpus with
	`python -m receipt_ocr.tuning`.
	"""

	base: float = 0.2
	price_found: float = 0.15
	# Name length within [name_min_len, name_max_len]
	name_length: float = 0.1
	product_like: float = 0.1
	quantity_found: float = 0.05
	currency_token: float = 0.05
	# Subtracted proportionally to the symbol ratio of the name
	symbol_penalty: float = 0.2
	name_min_len: int = 2
	name_max_len: int = 50
	floor: float = 0.05
	ceiling: float = 0.6


@dataclass(frozen=True)
class PipelineConfig:
	# Stage acceptance thresholds
	strict_threshold: float = 0.8
	flexible_threshold: float = 0.5
	heuristic_threshold: float = 0.0

	# Confidence class caps (pattern ceilings are clipped to these)
	strict_class_cap: float = 1.0
	flexible_class_cap: float = 0.75
	# Strict-class pattern only found inside the line (Flexible stage)
	partial_match_penalty: float = 0.9

	heuristic_weights: HeuristicWeights = field(default_factory=HeuristicWeights)

	# Validation
	arithmetic_tolerance: float = 0.02  # relative to the computed subtotal
	arithmetic_abs_tolerance: float = 0.01
	confidence_floor: float = 0.5
	noisy_name_ratio: float = 0.4
	# Yen ceiling; fractional yen amounts are flagged too
	max_plausible_price: float = 100000.0
	max_plausible_usd_price: float = 1000.0
	min_plausible_usd_price: float = 0.01
	max_plausible_quantity: float = 100.0
	max_item_count: int = 50
	# Used when the text carries no currency marks or cent amounts
	default_currency: str = "JPY"

	# Pattern library
	pattern_file: Path | None = None
	auto_detect_vendor: bool = False
	vendor_detect_min_score: float = 0.5

	# Normalizer
	locale_hint: str | None = None

	# Execution
	max_workers: int = 1

	# Logging
	log_path: Path | None = None
	log_to_stdout: bool = False
