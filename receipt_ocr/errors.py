from __future__ import annotations


class ReceiptOCRError(Exception):
	"""Base class for errors raised by the extraction pipeline."""


class InputError(ReceiptOCRError, TypeError):
	"""Raised when the raw OCR text is missing or not a string."""


class PatternDefinitionError(ReceiptOCRError, ValueError):
	"""Raised when a pattern definition cannot be compiled or is inconsistent."""
