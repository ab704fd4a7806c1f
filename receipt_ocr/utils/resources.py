from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError


class LabeledItem(BaseModel):
	name: str
	unit_price: Optional[str] = None
	quantity: Optional[str] = None
	subtotal: Optional[str] = None


class LabeledReceipt(BaseModel):
	"""One ground-truth receipt: OCR text plus the items a human read off it."""

	id: str
	text: str
	vendor_hint: Optional[str] = None
	items: List[LabeledItem] = Field(default_factory=list)


def load_labeled_receipts(path: Path) -> List[LabeledReceipt]:
	"""Load a JSON-lines corpus; blank lines and '#' comments are skipped.

	Raises ValueError naming the line number of the first malformed record.
	"""
	out: List[LabeledReceipt] = []
	for lineno, line in enumerate(Path(path).read_text(encoding="utf-8").splitlines(), start=1):
		line = line.strip()
		if not line or line.startswith("#"):
			continue
		try:
			out.append(LabeledReceipt.model_validate(json.loads(line)))
		except (json.JSONDecodeError, ValidationError) as e:
			raise ValueError(f"{path}:{lineno}: {e}") from e
	return out
