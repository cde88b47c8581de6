"""Exceptions raised while converting a profiler capture."""

from __future__ import annotations


class ConversionError(Exception):
    """Base class for fatal input errors; no output is produced."""


class TraceFormatError(ConversionError):
    pass


class SymbolFormatError(ConversionError):
    pass


class IntervalDefinitionError(ConversionError):
    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number
