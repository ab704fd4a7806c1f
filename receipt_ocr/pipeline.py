from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from receipt_ocr.coordinator import StageCoordinator
from receipt_ocr.debug_report import build_report
from receipt_ocr.errors import InputError
from receipt_ocr.normalizer import RawDocument, normalize_text
from receipt_ocr.patterns import PatternLibrary, detect_vendor, load_library
from receipt_ocr.schemas import ExtractionResult, ExtractOptions
from receipt_ocr.utils.config import PipelineConfig
from receipt_ocr.utils.logging import get_json_logger, log_event
from receipt_ocr.utils.text import detect_currency
from receipt_ocr.validator import validate_result


LOGGER_NAME = "receipt_ocr"

OptionsLike = Union[ExtractOptions, Mapping[str, Any], None]


def coerce_options(options: OptionsLike) -> ExtractOptions:
	if options is None:
		return ExtractOptions()
	if isinstance(options, ExtractOptions):
		return options
	if not isinstance(options, Mapping):
		raise InputError(f"options must be a mapping, got {type(options).__name__}")
	try:
		return ExtractOptions.model_validate(dict(options))
	except ValidationError as e:
		raise InputError(f"invalid options: {e}") from e


def extract(
	raw_text: str,
	options: OptionsLike = None,
	*,
	config: Optional[PipelineConfig] = None,
	library: Optional[PatternLibrary] = None,
) -> ExtractionResult:
	"""Extract receipt line items from raw OCR text.

	Only a non-string input raises (InputError). Everything else, including
	empty text and unreadable lines, comes back as a result carrying
	anomalies and a confidence the caller can route on.

	options: ExtractOptions or a mapping with vendorHint / debugMode /
	confidenceFloor (snake_case accepted too).
	"""
	if raw_text is None or not isinstance(raw_text, str):
		raise InputError(f"raw_text must be a str, got {type(raw_text).__name__}")

	opts = coerce_options(options)
	cfg = config or PipelineConfig()
	if opts.confidence_floor is not None:
		cfg = replace(cfg, confidence_floor=opts.confidence_floor)
	lib = library or load_library(cfg.pattern_file)
	logger = get_json_logger(LOGGER_NAME, cfg.log_path, to_stdout=cfg.log_to_stdout)

	document = RawDocument(content=raw_text, vendor_hint=opts.vendor_hint)
	log_event(
		logger,
		"extract_start",
		chars=len(raw_text),
		vendor_hint=opts.vendor_hint,
		debug_mode=opts.debug_mode,
	)

	lines = normalize_text(document.content, locale_hint=cfg.locale_hint)
	log_event(
		logger,
		"stage_normalize",
		lines=len(lines),
		item_lines=sum(1 for ln in lines if ln.is_item),
	)

	vendor_hint = lib.canonical_vendor(document.vendor_hint)
	if vendor_hint is None and cfg.auto_detect_vendor:
		detected = detect_vendor([ln.text for ln in lines], lib)
		if detected and detected[0].score >= cfg.vendor_detect_min_score:
			vendor_hint = detected[0].vendor
			log_event(logger, "vendor_detected", **detected[0].as_log_dict())

	coordinator = StageCoordinator.from_config(cfg)
	coordination = coordinator.coordinate(lines, lib, vendor_hint, collect_all=opts.debug_mode)
	log_event(
		logger,
		"stage_coordinate",
		vendor=vendor_hint,
		resolved=len(coordination.candidates),
		confidence=coordination.confidence,
		stages=[c.stage for c in coordination.candidates],
	)

	currency = detect_currency([ln.text for ln in lines], cfg.default_currency)
	outcome = validate_result(coordination, cfg, currency=currency)
	log_event(
		logger,
		"stage_validate",
		currency=outcome.currency,
		anomalies=list(outcome.anomaly_codes),
		corrections=len(outcome.corrections),
		quality_score=outcome.quality_score,
	)

	debug = None
	if opts.debug_mode:
		debug = build_report(document, lines, coordination, outcome, lib, cfg)

	result = ExtractionResult(
		items=list(outcome.items),
		confidence=outcome.confidence,
		quality_score=outcome.quality_score,
		anomalies=list(outcome.anomalies),
		vendor_hint=vendor_hint,
		currency=outcome.currency,
		debug=debug,
	)
	log_event(logger, "extract_done", items=len(result.items), confidence=result.confidence)
	return result
