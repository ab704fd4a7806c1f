from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from receipt_ocr.utils.text import normalize_spaces, strip_currency_tokens


PRICE_RE = re.compile(r"^(?P<sign>[-−])?(?P<int>\d{1,3}(?:,\d{3})+|\d+)(?:\.(?P<dec>\d{1,2}))?$")
QTY_RE = re.compile(r"^(?P<int>\d+)(?:\.(?P<dec>\d{1,3}))?$")

# Tax/reduced-rate marks printed right after the amount ("198*", "198軽", "198 T").
TRAILING_MARKS_RE = re.compile(r"[\s*※軽外内非TtXx]+$")
NAME_EDGE_RE = re.compile(r"^[\s*※・:.\-_#]+|[\s*※・:.\-_#]+$")


def clean_str(value: Optional[str]) -> Optional[str]:
	if value is None:
		return None
	v = normalize_spaces(value)
	return v if v else None


def clean_name(value: Optional[str]) -> Optional[str]:
	"""Strip receipt decoration (leading '*', tax marks, separators) from an item name."""
	v = clean_str(value)
	if v is None:
		return None
	v = NAME_EDGE_RE.sub("", v)
	return clean_str(v)


def parse_price(value: Optional[str]) -> Optional[Decimal]:
	"""Parse a money token into a Decimal; keeps the sign so negatives can be flagged."""
	if value is None:
		return None
	t = strip_currency_tokens(str(value)).strip()
	t = TRAILING_MARKS_RE.sub("", t)
	t = re.sub(r"\s+", "", t)
	m = PRICE_RE.match(t)
	if not m:
		return None
	num = m.group("int").replace(",", "")
	if m.group("dec"):
		num = f"{num}.{m.group('dec')}"
	try:
		out = Decimal(num)
	except InvalidOperation:
		return None
	return -out if m.group("sign") else out


def parse_quantity(value: Optional[str]) -> Optional[Decimal]:
	if value is None:
		return None
	t = re.sub(r"\s+", "", str(value))
	m = QTY_RE.match(t)
	if not m:
		return None
	num = m.group("int") + (f".{m.group('dec')}" if m.group("dec") else "")
	try:
		return Decimal(num)
	except InvalidOperation:
		return None


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
	if value is None:
		return None
	# Drop trailing zeros of integral values ("2.0" -> "2") but keep cents.
	if value == value.to_integral_value():
		return str(value.quantize(Decimal(1)))
	return str(value)
