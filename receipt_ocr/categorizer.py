from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from rapidfuzz import fuzz, process

from receipt_ocr.utils.text import normalize_name


@dataclass(frozen=True)
class Category:
	key: str
	label: str
	# Typical days until a purchased item should be used up; None when not perishable enough to matter.
	shelf_life_days: Optional[int]
	keywords: Tuple[str, ...]
	suffixes: Tuple[str, ...] = ()


# Checked in order: the first category with a hit wins ("牛乳" is dairy before "牛" is meat).
CATEGORIES: Tuple[Category, ...] = (
	Category(
		"frozen",
		"冷凍食品",
		90,
		("冷凍", "アイス", "シャーベット", "frozen", "ice cream", "popsicle", "sorbet", "sherbet"),
	),
	Category(
		"dairy",
		"乳製品",
		7,
		(
			"牛乳", "ミルク", "チーズ", "ヨーグルト", "バター", "生クリーム", "クリーム",
			"milk", "cheese", "yogurt", "yoghurt", "butter", "cream", "dairy",
		),
		("乳", "チーズ"),
	),
	Category(
		"canned",
		"缶詰・瓶詰",
		365,
		(
			"缶詰", "瓶詰", "ツナ缶", "トマト缶", "ジャム", "はちみつ", "ピクルス", "梅干し", "佃煮", "メンマ",
			"canned", "jam", "honey", "syrup", "pickles", "preserves",
		),
		("缶", "瓶"),
	),
	Category(
		"drinks",
		"飲料",
		30,
		(
			"お茶", "緑茶", "麦茶", "ウーロン茶", "紅茶", "コーヒー", "ジュース", "コーラ", "サイダー", "ビール",
			"焼酎", "ワイン", "日本酒", "チューハイ", "豆乳", "ドリンク", "炭酸", "天然水", "ミネラルウォーター",
			"water", "tea", "coffee", "juice", "cola", "soda", "beer", "wine", "drink", "beverage",
		),
		("茶", "酒", "ジュース"),
	),
	Category(
		"snacks",
		"お菓子",
		60,
		(
			"チョコ", "クッキー", "ケーキ", "せんべい", "スナック", "グミ", "キャンディ", "ビスケット", "プリン",
			"ゼリー", "チップス", "ナッツ",
			"chocolate", "cookie", "cookies", "cake", "candy", "chips", "snack", "biscuit", "pudding", "nuts",
		),
		("クッキー", "ケーキ"),
	),
	Category(
		"meat",
		"肉類",
		3,
		(
			"豚", "牛", "鶏", "ひき肉", "合挽", "こま切", "ロース", "ソーセージ", "ウインナー", "ハム", "ベーコン",
			"チキン", "ポーク", "ビーフ",
			"meat", "pork", "beef", "chicken", "turkey", "lamb", "ham", "bacon", "sausage", "steak",
		),
		("肉",),
	),
	Category(
		"fish",
		"魚類",
		2,
		(
			"魚", "さけ", "鮭", "まぐろ", "かつお", "いわし", "さば", "あじ", "たら", "刺身", "切身", "サーモン",
			"いか", "たこ", "えび", "ほたて", "あさり", "しじみ", "わかめ",
			"fish", "salmon", "tuna", "mackerel", "cod", "shrimp", "prawns", "crab", "scallop", "clams", "seafood",
		),
		("刺身", "切身"),
	),
	Category(
		"vegetables",
		"野菜",
		5,
		(
			"野菜", "キャベツ", "にんじん", "人参", "じゃがいも", "たまねぎ", "玉ねぎ", "トマト", "きゅうり", "なす",
			"ピーマン", "レタス", "ほうれん草", "もやし", "ねぎ", "だいこん", "大根", "ブロッコリー", "かぼちゃ",
			"しめじ", "えのき", "しいたけ", "白菜", "水菜",
			"vegetable", "cabbage", "carrot", "potato", "onion", "tomato", "cucumber", "lettuce", "spinach",
			"broccoli", "pumpkin", "mushroom", "celery", "zucchini", "corn",
		),
		("野菜", "菜"),
	),
	Category(
		"fruit",
		"果物",
		7,
		(
			"りんご", "みかん", "バナナ", "いちご", "ぶどう", "メロン", "スイカ", "キウイ", "オレンジ", "レモン",
			"パイナップル", "アボカド", "ブルーベリー",
			"fruit", "apple", "orange", "banana", "strawberry", "grape", "pear", "peach", "melon", "kiwi",
			"lemon", "lime", "pineapple", "mango", "avocado", "blueberry",
		),
		("フルーツ",),
	),
	Category(
		"grains",
		"パン・穀物",
		5,
		(
			"食パン", "パン", "米", "うどん", "そば", "ラーメン", "パスタ", "そうめん", "麺", "スパゲティ", "シリアル",
			"bread", "rice", "pasta", "noodles", "spaghetti", "cereal", "bagel", "muffin", "flour", "oatmeal",
		),
		("パン", "米", "麺"),
	),
	Category(
		"seasoning",
		"調味料",
		180,
		(
			"醤油", "しょうゆ", "味噌", "みそ", "砂糖", "みりん", "マヨネーズ", "ケチャップ", "ソース", "ドレッシング",
			"だし", "こしょう", "スパイス",
			"soy sauce", "salt", "sugar", "vinegar", "mayonnaise", "ketchup", "sauce", "dressing", "spice", "seasoning",
		),
		("調味料", "ソース", "油"),
	),
)

OTHER = Category("other", "その他", None, ())

VOLUME_RE = re.compile(r"(?i)\d+(?:\.\d+)?\s*(?:ml|l|リットル)\b")
LATIN_WORD_RE = re.compile(r"[a-z]")

_BY_KEY: Dict[str, Category] = {c.key: c for c in CATEGORIES + (OTHER,)}
_LATIN_KEYWORDS: List[Tuple[str, str]] = [
	(kw, c.key) for c in CATEGORIES for kw in c.keywords if LATIN_WORD_RE.search(kw)
]


def _keyword_hit(name: str, keyword: str) -> bool:
	if LATIN_WORD_RE.search(keyword):
		# Latin keywords must match on word boundaries ("ham" is not in "shampoo").
		return re.search(rf"\b{re.escape(keyword)}s?\b", name) is not None
	return keyword in name


def categorize(name: Optional[str], *, fuzzy_cutoff: float = 88.0) -> Tuple[str, str]:
	"""Return (category key, reason) for an item name."""
	n = normalize_name(name or "")
	if not n:
		return OTHER.key, "empty name"

	for cat in CATEGORIES:
		for kw in cat.keywords:
			if _keyword_hit(n, kw.lower()):
				return cat.key, f"keyword {kw!r}"
		compact = n.replace(" ", "")
		for suffix in cat.suffixes:
			if compact.endswith(suffix):
				return cat.key, f"suffix {suffix!r}"

	if VOLUME_RE.search(name or ""):
		return "drinks", "volume unit"

	# OCR-garbled English names ("CABBGE", "BANNANA")
	words = [w for w in n.split() if len(w) >= 4 and LATIN_WORD_RE.search(w)]
	best: Optional[Tuple[str, float, str]] = None
	for w in words:
		hit = process.extractOne(w, [kw for kw, _ in _LATIN_KEYWORDS], scorer=fuzz.ratio, score_cutoff=fuzzy_cutoff)
		if hit and (best is None or hit[1] > best[1]):
			best = (hit[0], float(hit[1]), w)
	if best is not None:
		key = dict(_LATIN_KEYWORDS)[best[0]]
		return key, f"fuzzy {best[2]!r}~{best[0]!r}"

	return OTHER.key, "no match"


def category_label(key: Optional[str]) -> str:
	return _BY_KEY.get(key or "", OTHER).label


def expiry_hint_days(key: Optional[str]) -> Optional[int]:
	"""Typical shelf life in days for a category key (None for unknown or non-perishable)."""
	return _BY_KEY.get(key or "", OTHER).shelf_life_days
