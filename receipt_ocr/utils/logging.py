from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger


def _json_formatter() -> jsonlogger.JsonFormatter:
	return jsonlogger.JsonFormatter(
		fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
		rename_fields={"levelname": "level", "name": "logger"},
	)


def _is_stream_handler(h: logging.Handler) -> bool:
	return isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)


def get_json_logger(name: str, log_path: Optional[Path] = None, *, to_stdout: bool = False) -> logging.Logger:
	"""Return a JSON-lines logger.

	Safe to call repeatedly: handlers are reconciled with the requested
	stream/file targets instead of being stacked on every call.
	"""
	logger = logging.getLogger(name)
	if getattr(logger, "_configured", False):
		if not to_stdout:
			# Library callers usually want a quiet stdout.
			for h in list(logger.handlers):
				if _is_stream_handler(h):
					logger.removeHandler(h)
		elif not any(_is_stream_handler(h) for h in logger.handlers):
			stream = logging.StreamHandler()
			stream.setFormatter(_json_formatter())
			logger.addHandler(stream)
		if log_path is not None:
			want = str(Path(log_path).resolve())
			has_file = any(isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", "") == want for h in logger.handlers)
			if not has_file:
				Path(log_path).parent.mkdir(parents=True, exist_ok=True)
				fh = logging.FileHandler(log_path, encoding="utf-8")
				fh.setFormatter(_json_formatter())
				logger.addHandler(fh)
		return logger

	logger.setLevel(logging.INFO)
	logger.propagate = False

	formatter = _json_formatter()

	if to_stdout:
		stream = logging.StreamHandler()
		stream.setFormatter(formatter)
		logger.addHandler(stream)

	if log_path is not None:
		Path(log_path).parent.mkdir(parents=True, exist_ok=True)
		fh = logging.FileHandler(log_path, encoding="utf-8")
		fh.setFormatter(formatter)
		logger.addHandler(fh)

	if not logger.handlers:
		# Keep "No handlers could be found" noise away when nothing is requested.
		logger.addHandler(logging.NullHandler())

	setattr(logger, "_configured", True)
	return logger


def log_event(logger: logging.Logger, event: str, **kwargs: Any) -> None:
	payload: Dict[str, Any] = {"event": event, **kwargs}
	logger.info(payload)
