from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Anomaly(BaseModel):
	model_config = ConfigDict(frozen=True)

	code: str
	severity: str = Field(pattern=r"^(error|warning|info)$")
	message: str
	line_index: Optional[int] = None
	field: Optional[str] = None


class ReceiptItem(BaseModel):
	model_config = ConfigDict(frozen=True)

	name: Optional[str] = None
	unit_price: Optional[Decimal] = None
	quantity: Optional[Decimal] = None
	subtotal: Optional[Decimal] = None
	category_hint: Optional[str] = None
	expiry_hint_days: Optional[int] = Field(default=None, ge=0)
	confidence: float = Field(ge=0.0, le=1.0)
	stage: str
	pattern_id: str
	line_index: int = Field(ge=0)
	raw_text: str = ""
	auto_corrected: bool = False
	corrected_fields: List[str] = Field(default_factory=list)
	anomalies: List[str] = Field(default_factory=list)

	@field_validator("corrected_fields")
	@classmethod
	def known_corrected_fields(cls, v: List[str]) -> List[str]:
		bad = [f for f in v if f not in ("unit_price", "quantity", "subtotal")]
		if bad:
			raise ValueError(f"only numeric fields can be corrected, got {bad}")
		return v


class DiagnosticReport(BaseModel):
	model_config = ConfigDict(frozen=True)

	text_stats: Dict[str, Any] = Field(default_factory=dict)
	pattern_stats: Dict[str, Any] = Field(default_factory=dict)
	result_stats: Dict[str, Any] = Field(default_factory=dict)
	suggestions: List[str] = Field(default_factory=list)
	line_traces: List[Dict[str, Any]] = Field(default_factory=list)


class ExtractionResult(BaseModel):
	model_config = ConfigDict(frozen=True)

	items: List[ReceiptItem] = Field(default_factory=list)
	confidence: float = Field(ge=0.0, le=1.0)
	quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
	anomalies: List[Anomaly] = Field(default_factory=list)
	vendor_hint: Optional[str] = None
	# "JPY" or "USD", as read from the text
	currency: Optional[str] = None
	debug: Optional[DiagnosticReport] = None

	@property
	def anomaly_codes(self) -> List[str]:
		return [a.code for a in self.anomalies]

	def to_dict(self) -> Dict[str, Any]:
		"""JSON-friendly mapping (decimals as strings); `debug` only when collected."""
		out = self.model_dump(mode="json")
		if out.get("debug") is None:
			out.pop("debug", None)
		return out


class ExtractOptions(BaseModel):
	"""Per-call options; accepts both snake_case and camelCase keys."""

	model_config = ConfigDict(populate_by_name=True, frozen=True)

	vendor_hint: Optional[str] = Field(default=None, alias="vendorHint")
	debug_mode: bool = Field(default=False, alias="debugMode")
	confidence_floor: Optional[float] = Field(default=None, ge=0.0, le=1.0, alias="confidenceFloor")

	@field_validator("vendor_hint")
	@classmethod
	def blank_hint_is_none(cls, v: Optional[str]) -> Optional[str]:
		if v is None:
			return None
		v = v.strip()
		return v or None
