from __future__ import annotations

import argparse
import itertools
import json
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from receipt_ocr.eval import evaluate_corpus
from receipt_ocr.utils.config import HeuristicWeights, PipelineConfig
from receipt_ocr.utils.config_io import load_config_json, save_config_json
from receipt_ocr.utils.resources import LabeledReceipt, load_labeled_receipts


def _grid_heuristic_weights(base: HeuristicWeights) -> List[HeuristicWeights]:
	# Small sweep around the current weights.
	bases = [0.15, 0.2, 0.25]
	price = [0.1, 0.15, 0.2]
	product = [0.05, 0.1, 0.15]
	penalty = [0.1, 0.2, 0.3]
	return [
		replace(base, base=b, price_found=pr, product_like=pl, symbol_penalty=sp)
		for b, pr, pl, sp in itertools.product(bases, price, product, penalty)
	]


def tune_heuristic_weights(
	receipts: Sequence[LabeledReceipt],
	base_cfg: Optional[PipelineConfig] = None,
	*,
	grid: Optional[Sequence[HeuristicWeights]] = None,
) -> Tuple[PipelineConfig, List[Dict[str, Any]]]:
	"""Pick the heuristic weights whose confidences best track item correctness.

	Objective: lowest confidence Brier score, tie-broken by item F1.
	"""
	cfg0 = base_cfg or PipelineConfig()
	candidates = list(grid) if grid is not None else _grid_heuristic_weights(cfg0.heuristic_weights)
	trials: List[Dict[str, Any]] = []
	best_cfg = cfg0
	best_key: Optional[Tuple[float, float]] = None
	for w in candidates:
		cfg = replace(cfg0, heuristic_weights=w)
		rep = evaluate_corpus(receipts, cfg)
		key = (-float(rep["confidence_brier"]), float(rep["item_f1"]))
		trials.append(
			{
				"weights": asdict(w),
				"confidence_brier": rep["confidence_brier"],
				"item_f1": rep["item_f1"],
			}
		)
		if best_key is None or key > best_key:
			best_key = key
			best_cfg = cfg
	return best_cfg, trials


def main() -> int:
	p = argparse.ArgumentParser(description="Grid-search heuristic confidence weights on a labelled corpus")
	p.add_argument("--labels", required=True, help="JSON-lines corpus (id, text, vendor_hint, items)")
	p.add_argument("--config", default="", help="Optional starting JSON config")
	p.add_argument("--out", default="outputs/best_config.json", help="Where to write the best config")
	p.add_argument("--report", default="", help="Optional path for all trial results")
	args = p.parse_args()

	base_cfg = load_config_json(Path(args.config)) if args.config else PipelineConfig()
	receipts = load_labeled_receipts(Path(args.labels))
	if not receipts:
		raise SystemExit(f"no labelled receipts in {args.labels}")

	best_cfg, trials = tune_heuristic_weights(receipts, base_cfg)
	save_config_json(best_cfg, Path(args.out))
	if args.report:
		rp = Path(args.report)
		rp.parent.mkdir(parents=True, exist_ok=True)
		rp.write_text(json.dumps({"trials": trials}, ensure_ascii=False, indent=2), encoding="utf-8")

	print(json.dumps({"best_weights": asdict(best_cfg.heuristic_weights), "trials": len(trials)}, ensure_ascii=False, indent=2))
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
