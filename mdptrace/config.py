"""Runtime configuration for the trace converter."""

import logging
import os
from pathlib import Path
from typing import Optional, Union


class ConverterConfig:
    """Configuration for trace conversion.

    Settings come from environment variables, with programmatic values taking
    precedence where they have been set.
    """

    # Environment variable names
    ENV_LOG_LEVEL = "MDPTRACE_LOG_LEVEL"
    ENV_PROCESS_NAME = "MDPTRACE_PROCESS_NAME"
    ENV_FORMAT = "MDPTRACE_FORMAT"

    FORMATS = ("json", "perfetto")
    SUFFIXES = {"json": ".json", "perfetto": ".perfetto-trace"}

    DEFAULT_PROCESS_NAME = "M68000"
    DEFAULT_FORMAT = "json"
    DISPLAY_TIME_UNIT = "ms"

    _process_name: Optional[str] = None
    _format: Optional[str] = None
    _output_path: Optional[Path] = None

    @classmethod
    def log_level(cls) -> int:
        """Log level from MDPTRACE_LOG_LEVEL (name or number), WARNING if unset."""
        value = os.environ.get(cls.ENV_LOG_LEVEL, "").strip()
        if not value:
            return logging.WARNING
        if value.isdigit():
            return int(value)
        level = logging.getLevelName(value.upper())
        return level if isinstance(level, int) else logging.WARNING

    @classmethod
    def process_name(cls) -> str:
        if cls._process_name:
            return cls._process_name
        return os.environ.get(cls.ENV_PROCESS_NAME) or cls.DEFAULT_PROCESS_NAME

    @classmethod
    def output_format(cls) -> str:
        if cls._format:
            return cls._format
        value = os.environ.get(cls.ENV_FORMAT, "").lower()
        if value in cls.FORMATS:
            return value
        return cls.DEFAULT_FORMAT

    @classmethod
    def set_process_name(cls, name: Optional[str]) -> None:
        cls._process_name = name

    @classmethod
    def set_format(cls, fmt: Optional[str]) -> None:
        if fmt is not None and fmt not in cls.FORMATS:
            raise ValueError(f"Unknown output format: {fmt}")
        cls._format = fmt

    @classmethod
    def set_output_path(cls, path: Optional[Union[str, Path]]) -> None:
        cls._output_path = Path(path) if path else None

    @classmethod
    def get_output_path(cls, trace_path: Union[str, Path]) -> Path:
        """Output path for a given capture.

        Checks in order:
        1. Programmatically set path
        2. The capture path with the suffix of the output format
        """
        if cls._output_path:
            return cls._output_path
        return Path(trace_path).with_suffix(cls.SUFFIXES[cls.output_format()])

    @classmethod
    def reset(cls) -> None:
        """Drop programmatic overrides."""
        cls._process_name = None
        cls._format = None
        cls._output_path = None
