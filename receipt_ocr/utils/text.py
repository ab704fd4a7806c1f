from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterable, Optional


KANA_RE = re.compile(r"[\u3040-\u30FF\uFF66-\uFF9F]")
KANJI_RE = re.compile(r"[\u4E00-\u9FFF\u3400-\u4DBF]")
LATIN_RE = re.compile(r"[A-Za-z]")
DIGIT_RE = re.compile(r"\d")

CONTROL_RE = re.compile(r"[\u0000-\u0008\u000B-\u001F\u007F-\u009F\u200B-\u200F\uFEFF]")

YEN_MARK_RE = re.compile(r"[¥円]|\bJPY\b", re.IGNORECASE)
DOLLAR_MARK_RE = re.compile(r"\$|\bUSD\b", re.IGNORECASE)
CENTS_RE = re.compile(r"(?<![\d.])\d+\.\d{2}(?![\d.])")


def normalize_spaces(text: str) -> str:
	return re.sub(r"\s+", " ", text).strip()


def fold_width(text: str) -> str:
	"""NFKC fold: full-width digits/latin to ASCII, half-width kana to full-width."""
	if not text:
		return ""
	return unicodedata.normalize("NFKC", text)


def strip_control(text: str) -> str:
	return CONTROL_RE.sub("", text or "")


PUNCT_RE = re.compile(r"[^\w\s\u3040-\u30FF\u4E00-\u9FFF]+", re.UNICODE)


def normalize_name(text: str) -> str:
	"""Normalize item-like names for matching: lowercase, strip punctuation, collapse spaces."""
	if not text:
		return ""
	t = fold_width(text).strip().lower()
	t = PUNCT_RE.sub(" ", t)
	t = normalize_spaces(t)
	return t


# Yen and dollar marks as they appear after NFKC folding, plus spelled-out units.
CURRENCY_TOKENS_RE = re.compile(r"(?i)(¥|\$|円|yen|jpy|usd)")


def strip_currency_tokens(text: str) -> str:
	return CURRENCY_TOKENS_RE.sub(" ", text or "")


def has_currency_token(text: str) -> bool:
	return bool(CURRENCY_TOKENS_RE.search(text or ""))


def digits_only(text: str) -> str:
	return re.sub(r"\D+", "", text)


def is_alnum_char(ch: str) -> bool:
	"""True for letters/digits in any script (kana and kanji count as letters)."""
	return ch.isalnum()


def symbol_ratio(text: str) -> float:
	"""Share of non-space characters that are neither letters nor digits."""
	chars = [c for c in (text or "") if not c.isspace()]
	if not chars:
		return 0.0
	sym = sum(1 for c in chars if not is_alnum_char(c))
	return float(sym) / float(len(chars))


def char_class(ch: str) -> str:
	if ch.isspace():
		return "space"
	if DIGIT_RE.match(ch):
		return "digit"
	if LATIN_RE.match(ch):
		return "latin"
	if KANA_RE.match(ch):
		return "kana"
	if KANJI_RE.match(ch):
		return "kanji"
	if ch.isalnum():
		return "other"
	return "symbol"


CHAR_CLASSES = ("digit", "latin", "kana", "kanji", "space", "symbol", "other")


def char_class_histogram(texts: Iterable[str]) -> Dict[str, int]:
	"""Count characters per script/class across all texts, in a fixed key order."""
	hist: Dict[str, int] = {k: 0 for k in CHAR_CLASSES}
	for t in texts:
		for ch in t or "":
			hist[char_class(ch)] += 1
	return hist


def detect_language_bucket(texts: Iterable[str]) -> str:
	"""Heuristic script bucket: 'en' | 'ja' | 'mixed' | 'unknown'."""
	joined = " ".join([t for t in texts if t])
	if not joined:
		return "unknown"

	ja = len(KANA_RE.findall(joined)) + len(KANJI_RE.findall(joined))
	lat = len(LATIN_RE.findall(joined))

	mx = max(ja, lat)
	if mx == 0:
		return "unknown"

	# Mixed if second-best is close
	lo = min(ja, lat)
	if lo / mx >= 0.35:
		return "mixed"
	return "ja" if ja > lat else "en"


def currency_mark(text: str) -> Optional[str]:
	"""'JPY' or 'USD' when the text carries an explicit currency mark, else None."""
	yen = len(YEN_MARK_RE.findall(text or ""))
	usd = len(DOLLAR_MARK_RE.findall(text or ""))
	if not yen and not usd:
		return None
	return "USD" if usd > yen else "JPY"


def detect_currency(texts: Iterable[str], default: str = "JPY") -> str:
	"""Document currency: explicit marks first, then two-decimal amounts read as dollars."""
	joined = " ".join([t for t in texts if t])
	mark = currency_mark(joined)
	if mark is not None:
		return mark
	if CENTS_RE.search(joined):
		return "USD"
	return default


def looks_like_product(text: str) -> bool:
	"""Japanese script, or at least three latin/alphanumeric characters."""
	if not text:
		return False
	if KANA_RE.search(text) or KANJI_RE.search(text):
		return True
	return len(re.findall(r"[A-Za-z0-9]", text)) >= 3 and bool(LATIN_RE.search(text))
