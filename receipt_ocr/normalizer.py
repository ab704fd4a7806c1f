from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

from receipt_ocr.utils.text import fold_width, normalize_spaces, strip_control


@dataclass(frozen=True)
class RawDocument:
	content: str
	vendor_hint: Optional[str] = None


class LineKind(str, Enum):
	ITEM = "candidate-item-line"
	HEADER = "header-line"
	NOISE = "noise-line"


@dataclass(frozen=True)
class NormalizedLine:
	index: int
	text: str
	raw: str
	kind: LineKind
	# Physical lines that make up this logical line (more than one after fusion).
	source_indices: Tuple[int, ...] = ()
	merged_into: Optional[int] = None

	@property
	def is_item(self) -> bool:
		return self.kind is LineKind.ITEM

	def as_log_dict(self) -> Dict[str, object]:
		return {
			"index": int(self.index),
			"text": self.text,
			"kind": self.kind.value,
			"source_indices": list(self.source_indices),
			"merged_into": self.merged_into,
		}


# Ordered OCR artifact substitutions, applied after NFKC folding.
_ARTIFACTS: List[Tuple[Pattern[str], str]] = [
	# Leader runs between name and price ("キャベツ.......198")
	(re.compile(r"[.·・…_=~]{3,}|-{3,}"), " "),
	# Column rules
	(re.compile(r"\|+"), " "),
	# Quote/backtick noise
	(re.compile(r"[\"'`]{2,}"), " "),
	# Letters misread inside digit runs
	(re.compile(r"(?<=\d)[Oo](?=\d)"), "0"),
	(re.compile(r"(?<=\d)[lI](?=\d)"), "1"),
	# Spaced thousands separators ("1, 280")
	(re.compile(r"(?<=\d),\s+(?=\d{3}(?!\d))"), ","),
	(re.compile(r"¥\s+(?=[-−]?\d)"), "¥"),
]

# Yen sign rendered as a backslash by Japanese fonts ("\198").
_BACKSLASH_YEN = (re.compile(r"\\\s*(?=[-−]?\d)"), "¥")

HEADER_KEYWORDS_RE = re.compile(
	r"(?i)(\bsub\s*-?total\b|\btotal\b|\btax\b|\bcash\b|\bchange\b|\bbalance\b|\bvisa\b|\bmastercard\b|"
	r"\bcredit\b|\bdebit\b|\bmember\b|\breceipt\b|\btel\b|\bphone\b|\bthank|\bcashier\b|\bregister\b|"
	r"小計|合計|総計|税|お釣|釣銭|お預|預り|現金|点数|領収|レシート|電話|登録番号|担当|レジ|毎度|ありがとう|ポイント)"
)
DATE_RE = re.compile(r"\d{2,4}\s*[/年.-]\s*\d{1,2}\s*[/月.-]\s*\d{1,2}")
TIME_RE = re.compile(r"(?<!\d)\d{1,2}:\d{2}(?::\d{2})?(?!\d)")
PHONE_RE = re.compile(r"(?<!\d)0\d{1,4}-\d{1,4}-\d{3,4}(?!\d)")

PRICE_ONLY_RE = re.compile(r"^[-−]?[¥$]?\s*[-−]?\d{1,3}(?:,\d{3})*(?:\d+)?(?:\.\d{1,2})?\s*円?\s*[*※軽外内T]?$")
LETTER_RE = re.compile(r"[^\W\d_]")
DIGIT_RE = re.compile(r"\d")


def clean_line(raw: str, *, locale_hint: Optional[str] = None) -> str:
	"""Fold, strip control characters and apply the artifact table to one physical line."""
	t = strip_control(fold_width(raw))
	t = t.replace("\t", " ")
	if (locale_hint or "").lower() != "en":
		rx, rep = _BACKSLASH_YEN
		t = rx.sub(rep, t)
	for rx, rep in _ARTIFACTS:
		t = rx.sub(rep, t)
	return normalize_spaces(t)


def is_price_only(text: str) -> bool:
	return bool(text) and bool(PRICE_ONLY_RE.match(text))


def is_header_text(text: str) -> bool:
	return bool(HEADER_KEYWORDS_RE.search(text) or DATE_RE.search(text) or TIME_RE.search(text) or PHONE_RE.search(text))


def classify_line(text: str) -> LineKind:
	"""Lightweight header/item/noise classification of a cleaned line."""
	if len(text) < 2:
		return LineKind.NOISE
	has_letter = bool(LETTER_RE.search(text))
	has_digit = bool(DIGIT_RE.search(text))
	if not has_letter and not has_digit:
		return LineKind.NOISE
	if is_header_text(text):
		return LineKind.HEADER
	if not has_letter or is_price_only(text):
		# Bare amounts, barcodes and register numbers carry no item name.
		return LineKind.NOISE
	if not has_digit:
		# Store names, greetings, section titles.
		return LineKind.HEADER
	return LineKind.ITEM


def _is_name_only(text: str) -> bool:
	return bool(LETTER_RE.search(text)) and not DIGIT_RE.search(text) and not is_header_text(text)


def normalize_text(content: str, locale_hint: Optional[str] = None) -> List[NormalizedLine]:
	"""Split raw OCR text into cleaned, classified lines (one per physical line).

	Empty input yields an empty list. A name-only line directly followed by a
	price-only line is fused into one candidate line; the price line stays in
	the output as noise pointing at the line it was merged into.
	"""
	if not content:
		return []

	physical = content.splitlines()
	cleaned = [clean_line(r, locale_hint=locale_hint) for r in physical]

	out: List[NormalizedLine] = []
	i = 0
	while i < len(cleaned):
		text = cleaned[i]
		nxt = cleaned[i + 1] if i + 1 < len(cleaned) else ""
		if _is_name_only(text) and is_price_only(nxt):
			out.append(
				NormalizedLine(
					index=i,
					text=f"{text} {nxt}",
					raw=physical[i],
					kind=LineKind.ITEM,
					source_indices=(i, i + 1),
				)
			)
			out.append(
				NormalizedLine(
					index=i + 1,
					text=nxt,
					raw=physical[i + 1],
					kind=LineKind.NOISE,
					source_indices=(i + 1,),
					merged_into=i,
				)
			)
			i += 2
			continue
		out.append(
			NormalizedLine(
				index=i,
				text=text,
				raw=physical[i],
				kind=classify_line(text),
				source_indices=(i,),
			)
		)
		i += 1
	return out


def item_lines(lines: List[NormalizedLine]) -> List[NormalizedLine]:
	return [ln for ln in lines if ln.is_item]
