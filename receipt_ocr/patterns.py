from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator
from rapidfuzz import fuzz, process

from receipt_ocr.errors import PatternDefinitionError


GENERIC = "generic"
PATTERN_SET_VERSION = "2"


class ConfidenceClass(str, Enum):
	STRICT = "strict"
	FLEXIBLE = "flexible"
	HEURISTIC = "heuristic"


# Ceiling caps per class; a pattern may declare a lower ceiling but never a higher one.
CLASS_CAPS: Dict[ConfidenceClass, float] = {
	ConfidenceClass.STRICT: 1.0,
	ConfidenceClass.FLEXIBLE: 0.75,
	ConfidenceClass.HEURISTIC: 0.6,
}

# Regex group name -> record field
GROUP_FIELDS: Dict[str, str] = {
	"name": "name",
	"price": "unit_price",
	"unit_price": "unit_price",
	"quantity": "quantity",
	"subtotal": "subtotal",
	"category": "category_hint",
}
PRICE_FIELDS = ("unit_price", "subtotal")

# Shared building blocks for the built-in expressions.
_NUM = r"[-−]?\d{1,3}(?:,\d{3})*(?:\d+)?(?:\.\d{1,2})?"
_CUR = r"[¥$]"
_TAX = r"\s*円?\s*[*※軽外内T]?"
# Optional leading item code, e.g. "4901 " or "E 1234567 "
_CODE = r"(?:(?:E\s+)?\d{4,}\s+)?"


def vendor_key(vendor: Optional[str]) -> str:
	"""Case/space/punctuation-insensitive vendor key ('A-Mart' == 'a mart' == 'AMART')."""
	return re.sub(r"[\s_\-.・]+", "", vendor or "").lower()


@dataclass(frozen=True)
class Pattern:
	id: str
	vendor: str
	confidence_class: ConfidenceClass
	fields: Tuple[str, ...]
	regex: re.Pattern
	ceiling: float
	category_hint: Optional[str] = None
	description: str = ""

	@property
	def is_generic(self) -> bool:
		return self.vendor == GENERIC

	@property
	def price_field(self) -> str:
		return "unit_price" if "unit_price" in self.fields else "subtotal"

	@property
	def optional_fields(self) -> Tuple[str, ...]:
		return tuple(f for f in self.fields if f not in ("name", self.price_field))

	def as_log_dict(self) -> Dict[str, object]:
		return {
			"id": self.id,
			"vendor": self.vendor,
			"class": self.confidence_class.value,
			"fields": list(self.fields),
			"ceiling": float(self.ceiling),
		}


@dataclass(frozen=True)
class VendorProfile:
	name: str
	keywords: Tuple[str, ...] = ()
	markers: Tuple[re.Pattern, ...] = ()


class PatternDefinition(BaseModel):
	"""Authoring format for a pattern (built-ins and JSON pattern files)."""

	id: str = Field(min_length=1)
	vendor: str = GENERIC
	confidence_class: ConfidenceClass
	expression: str = Field(min_length=1)
	ceiling: float = Field(default=1.0, ge=0.0, le=1.0)
	category_hint: Optional[str] = None
	description: str = ""

	@field_validator("expression")
	@classmethod
	def expression_compiles(cls, v: str) -> str:
		try:
			rx = re.compile(v)
		except re.error as e:
			raise ValueError(f"invalid regular expression: {e}") from e
		unknown = sorted(set(rx.groupindex) - set(GROUP_FIELDS))
		if unknown:
			raise ValueError(f"unknown capture groups: {unknown}")
		return v


class VendorDefinition(BaseModel):
	name: str = Field(min_length=1)
	keywords: List[str] = Field(default_factory=list)
	markers: List[str] = Field(default_factory=list)


class PatternFile(BaseModel):
	version: str = PATTERN_SET_VERSION
	vendors: List[VendorDefinition] = Field(default_factory=list)
	patterns: List[PatternDefinition] = Field(default_factory=list)


def compile_pattern(defn: PatternDefinition) -> Pattern:
	rx = re.compile(defn.expression)
	fields_: List[str] = []
	for group in rx.groupindex:
		f = GROUP_FIELDS[group]
		if f not in fields_:
			fields_.append(f)
	if defn.category_hint and "category_hint" not in fields_:
		fields_.append("category_hint")

	has_price = any(f in fields_ for f in PRICE_FIELDS)
	if defn.confidence_class is ConfidenceClass.STRICT and not ("name" in fields_ and has_price):
		raise PatternDefinitionError(f"strict pattern {defn.id!r} must capture a name and a price")
	if defn.confidence_class is ConfidenceClass.FLEXIBLE and not has_price:
		raise PatternDefinitionError(f"flexible pattern {defn.id!r} must capture a price")
	cap = CLASS_CAPS[defn.confidence_class]
	if defn.ceiling > cap:
		raise PatternDefinitionError(
			f"pattern {defn.id!r} ceiling {defn.ceiling} exceeds the {defn.confidence_class.value} cap {cap}"
		)
	return Pattern(
		id=defn.id,
		vendor=GENERIC if vendor_key(defn.vendor) == GENERIC else defn.vendor,
		confidence_class=defn.confidence_class,
		fields=tuple(fields_),
		regex=rx,
		ceiling=float(defn.ceiling),
		category_hint=defn.category_hint,
		description=defn.description,
	)


def compile_vendor(defn: VendorDefinition) -> VendorProfile:
	try:
		markers = tuple(re.compile(m) for m in defn.markers)
	except re.error as e:
		raise PatternDefinitionError(f"vendor {defn.name!r} has an invalid marker: {e}") from e
	return VendorProfile(name=defn.name, keywords=tuple(defn.keywords), markers=markers)


class PatternLibrary:
	"""Immutable registry of patterns keyed by vendor.

	Built once and shared; every accessor returns tuples so callers cannot
	mutate the registry.
	"""

	def __init__(
		self,
		patterns: Iterable[Pattern],
		vendors: Iterable[VendorProfile] = (),
		*,
		version: str = PATTERN_SET_VERSION,
	) -> None:
		ordered = tuple(patterns)
		seen: Dict[str, Pattern] = {}
		for p in ordered:
			if p.id in seen:
				raise PatternDefinitionError(f"duplicate pattern id {p.id!r}")
			seen[p.id] = p

		by_vendor: Dict[str, List[Pattern]] = {}
		display: Dict[str, str] = {}
		for p in ordered:
			if p.is_generic:
				continue
			key = vendor_key(p.vendor)
			by_vendor.setdefault(key, []).append(p)
			display.setdefault(key, p.vendor)

		profiles: Dict[str, VendorProfile] = {}
		for v in vendors:
			profiles[vendor_key(v.name)] = v
			display.setdefault(vendor_key(v.name), v.name)

		self._patterns = ordered
		self._by_id = MappingProxyType(seen)
		self._generic = tuple(p for p in ordered if p.is_generic)
		self._by_vendor = MappingProxyType({k: tuple(v) for k, v in by_vendor.items()})
		self._profiles = MappingProxyType(profiles)
		self._display = MappingProxyType(display)
		self.version = version

	@property
	def patterns(self) -> Tuple[Pattern, ...]:
		return self._patterns

	@property
	def vendors(self) -> Tuple[str, ...]:
		return tuple(sorted(self._display.values()))

	@property
	def profiles(self) -> Tuple[VendorProfile, ...]:
		return tuple(self._profiles.values())

	def get(self, pattern_id: str) -> Optional[Pattern]:
		return self._by_id.get(pattern_id)

	def knows_vendor(self, vendor_hint: Optional[str]) -> bool:
		return vendor_key(vendor_hint) in self._display

	def canonical_vendor(self, vendor_hint: Optional[str]) -> Optional[str]:
		if not vendor_hint:
			return None
		return self._display.get(vendor_key(vendor_hint), vendor_hint)

	def lookup(self, vendor_hint: Optional[str] = None) -> Tuple[Pattern, ...]:
		"""Vendor-specific patterns first (authoring order), then all generic ones.

		No hint, or a hint for a vendor without patterns, yields generic only.
		"""
		if not vendor_hint:
			return self._generic
		return self._by_vendor.get(vendor_key(vendor_hint), ()) + self._generic

	def extended(self, other: "PatternLibrary") -> "PatternLibrary":
		"""New library with `other`'s vendors and patterns appended after this one's."""
		return PatternLibrary(
			self._patterns + other.patterns,
			tuple(self._profiles.values()) + other.profiles,
			version=f"{self.version}+{other.version}",
		)

	@classmethod
	def from_definitions(
		cls,
		patterns: Sequence[PatternDefinition | Mapping[str, Any]],
		vendors: Sequence[VendorDefinition | Mapping[str, Any]] = (),
		*,
		version: str = PATTERN_SET_VERSION,
	) -> "PatternLibrary":
		try:
			pdefs = [p if isinstance(p, PatternDefinition) else PatternDefinition.model_validate(p) for p in patterns]
			vdefs = [v if isinstance(v, VendorDefinition) else VendorDefinition.model_validate(v) for v in vendors]
		except ValidationError as e:
			raise PatternDefinitionError(str(e)) from e
		return cls([compile_pattern(d) for d in pdefs], [compile_vendor(v) for v in vdefs], version=version)

	@classmethod
	def from_json(cls, path: Path) -> "PatternLibrary":
		obj = json.loads(Path(path).read_text(encoding="utf-8"))
		try:
			pf = PatternFile.model_validate(obj)
		except ValidationError as e:
			raise PatternDefinitionError(f"{path}: {e}") from e
		return cls.from_definitions(pf.patterns, pf.vendors, version=pf.version)


BUILTIN_VENDORS: List[Dict[str, Any]] = [
	{
		"name": "A-Mart",
		"keywords": ["A-MART", "Aマート", "エーマート"],
		"markers": [r"^\d{4,6}\s+\S.*\s\d+\s*@\s*\d"],
	},
	{
		"name": "Warehouse",
		"keywords": ["COSTCO", "WHOLESALE", "MEMBER #"],
		"markers": [r"\d+\s*@\s*\$?\d+\.\d{2}", r"(?i)QTY\s*\d+", r"^E?\s*\d{5,7}\s+[A-Z]"],
	},
	{
		"name": "Life",
		"keywords": ["ライフ", "L-POINT", "LIFE"],
		"markers": [r"^\*\S.*\s¥\d+$"],
	},
]


BUILTIN_PATTERNS: List[Dict[str, Any]] = [
	# A-Mart: "4901 りんご 2 @ 150 300" and "牛乳 198外"
	{
		"id": "amart-code-qty-at",
		"vendor": "A-Mart",
		"confidence_class": "strict",
		"expression": r"^\d{4,6}\s+(?P<name>[^\d@]+?)\s+(?P<quantity>\d+)\s*@\s*(?P<unit_price>\d{1,3}(?:,\d{3})*|\d+)\s+(?P<subtotal>\d{1,3}(?:,\d{3})*|\d+)$",
		"ceiling": 0.95,
		"description": "item code, name, quantity @ unit price, line total",
	},
	{
		"id": "amart-name-price-tax",
		"vendor": "A-Mart",
		"confidence_class": "strict",
		"expression": r"^(?P<name>[^\d¥]+?)\s+(?P<price>\d{1,3}(?:,\d{3})*|\d+)\s*(?:外|内|軽|\*)$",
		"ceiling": 0.9,
		"description": "name then price with a tax flag",
	},
	# Warehouse club: "E 1234567 KS WATER 40PK 9.99 N"
	{
		"id": "warehouse-item-code",
		"vendor": "Warehouse",
		"confidence_class": "strict",
		"expression": r"^(?:E\s+)?\d{5,7}\s+(?P<name>[A-Z][A-Z0-9 &'./-]*?)\s+(?P<price>-?\d+\.\d{2})(?:\s*[NAYTE])?$",
		"ceiling": 0.95,
		"description": "item number, upper-case name, price, tax code",
	},
	{
		"id": "warehouse-qty-at",
		"vendor": "Warehouse",
		"confidence_class": "flexible",
		"expression": r"(?i)(?:QTY\s*)?(?P<quantity>\d+)\s*@\s*\$?(?P<unit_price>\d+\.\d{2})",
		"ceiling": 0.6,
		"description": "quantity continuation line",
	},
	# Life supermarket: "*国産牛こま切れ ¥498"
	{
		"id": "life-asterisk-yen",
		"vendor": "Life",
		"confidence_class": "strict",
		"expression": r"^\*(?P<name>[^¥]+?)\s+¥(?P<price>\d{1,3}(?:,\d{3})*|\d+)$",
		"ceiling": 0.95,
		"description": "reduced-tax asterisk, name, yen price",
	},
	# Generic strict
	{
		"id": "generic-name-qty-at-total",
		"vendor": GENERIC,
		"confidence_class": "strict",
		"expression": rf"^(?P<name>[^\d¥$@]+?)\s+(?P<quantity>\d+)\s*[@x×]\s*{_CUR}(?P<unit_price>{_NUM})\s+{_CUR}(?P<subtotal>{_NUM}){_TAX}$",
		"ceiling": 0.95,
		"description": "name, quantity @ currency unit price, currency line total",
	},
	{
		"id": "generic-name-currency-price",
		"vendor": GENERIC,
		"confidence_class": "strict",
		"expression": rf"^(?P<name>[^\d¥$]+?)\s+{_CUR}(?P<price>{_NUM}){_TAX}$",
		"ceiling": 0.9,
		"description": "digit-free name followed by a currency-marked price",
	},
	# Generic flexible
	{
		"id": "generic-name-qty-unit-price",
		"vendor": GENERIC,
		"confidence_class": "flexible",
		"expression": rf"(?i)(?<![^\W\d_])(?P<name>[^\d¥$]+?)\s*(?P<quantity>\d+)\s*(?:個|点|本|袋|パック|pcs|pc|ea)\s*{_CUR}?(?P<price>{_NUM})",
		"ceiling": 0.7,
		"description": "name, counted quantity, price",
	},
	{
		"id": "generic-name-at-total",
		"vendor": GENERIC,
		"confidence_class": "flexible",
		"expression": rf"(?<![^\W\d_])(?P<name>[^\d¥$@]+?)\s+(?P<quantity>\d+)\s*[@x×]\s*{_CUR}?(?P<unit_price>{_NUM})\s+{_CUR}?(?P<subtotal>{_NUM})",
		"ceiling": 0.7,
		"description": "name, quantity @ unit price, line total without currency marks",
	},
	{
		"id": "generic-name-times-qty",
		"vendor": GENERIC,
		"confidence_class": "flexible",
		"expression": rf"(?i)(?<![^\W\d_])(?P<name>[^\d¥$]+?)\s*[x×*]\s*(?P<quantity>\d+)\s+{_CUR}?(?P<subtotal>{_NUM}){_TAX}$",
		"ceiling": 0.65,
		"description": "name x quantity, line total",
	},
	{
		"id": "generic-price-first",
		"vendor": GENERIC,
		"confidence_class": "flexible",
		"expression": rf"^{_CUR}(?P<price>{_NUM})\s+(?P<name>[^\d¥$].*?)$",
		"ceiling": 0.6,
		"description": "currency price before the name",
	},
	{
		"id": "generic-name-qty-times-price",
		"vendor": GENERIC,
		"confidence_class": "flexible",
		"expression": rf"(?i)^{_CODE}(?P<name>[^\d¥$]+?)\s+(?P<quantity>\d{{1,3}})\s*[x×]\s*{_CUR}?(?P<price>{_NUM}){_TAX}$",
		"ceiling": 0.65,
		"description": "name, quantity followed by x, unit price",
	},
	{
		"id": "generic-name-trailing-price",
		"vendor": GENERIC,
		"confidence_class": "flexible",
		"expression": rf"^{_CODE}(?P<name>(?=[^\d¥$]*?[^\W\d_])[^\d¥$]+?)\s*{_CUR}?(?P<price>{_NUM}){_TAX}$",
		"ceiling": 0.65,
		"description": "name from the start of the line followed by a trailing amount",
	},
]


def builtin_library() -> PatternLibrary:
	return PatternLibrary.from_definitions(BUILTIN_PATTERNS, BUILTIN_VENDORS)


@lru_cache(maxsize=1)
def default_library() -> PatternLibrary:
	"""Process-wide built-in library, compiled on first use."""
	return builtin_library()


@lru_cache(maxsize=8)
def _library_with_file(path: str) -> PatternLibrary:
	return default_library().extended(PatternLibrary.from_json(Path(path)))


def load_library(pattern_file: Optional[Path] = None) -> PatternLibrary:
	"""Built-ins, optionally extended by a JSON pattern file (cached per path)."""
	if pattern_file is None:
		return default_library()
	return _library_with_file(str(Path(pattern_file).resolve()))


@dataclass(frozen=True)
class VendorScore:
	vendor: str
	score: float
	keyword: Optional[str] = None
	marker_hits: int = 0

	def as_log_dict(self) -> Dict[str, object]:
		return {"vendor": self.vendor, "score": float(self.score), "keyword": self.keyword, "marker_hits": int(self.marker_hits)}


def detect_vendor(texts: Sequence[str], library: PatternLibrary, *, keyword_threshold: int = 90) -> List[VendorScore]:
	"""Score each known vendor against the receipt lines, best first.

	Keywords are matched fuzzily (OCR drops and swaps characters in store
	names); markers are layout regexes counted per line.
	"""
	lines = [t for t in texts if t]
	if not lines:
		return []
	scores: List[VendorScore] = []
	for prof in library.profiles:
		kw_score = 0.0
		best_kw: Optional[str] = None
		for kw in prof.keywords:
			# Lines shorter than the keyword would align fully inside it.
			cands = [ln for ln in lines if len(ln) >= len(kw)]
			if not cands:
				continue
			hit = process.extractOne(kw.upper(), cands, scorer=fuzz.partial_ratio, processor=str.upper)
			if hit and hit[1] >= keyword_threshold and hit[1] / 100.0 > kw_score:
				kw_score = float(hit[1]) / 100.0
				best_kw = kw
		hits = sum(1 for ln in lines if any(m.search(ln) for m in prof.markers))
		marker_score = min(1.0, hits / 3.0)
		score = float(round(0.7 * kw_score + 0.3 * marker_score, 4))
		if score > 0:
			scores.append(VendorScore(vendor=prof.name, score=score, keyword=best_kw, marker_hits=hits))
	scores.sort(key=lambda s: (-s.score, s.vendor))
	return scores
