#!/usr/bin/env python3
"""Command-line converter from ``.mdp`` captures to trace-viewer files."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConverterConfig
from .errors import ConversionError
from .pipeline import convert
from .serializer import write_json, write_perfetto

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdptrace",
        description="Convert a profiler capture into a Chrome/Perfetto trace",
    )
    parser.add_argument("trace", type=Path, help="Profiler capture (.mdp)")
    parser.add_argument(
        "-s",
        "--symbols",
        type=Path,
        help="Symbol file (asm68k, AS listing or nm output)",
    )
    parser.add_argument(
        "-i", "--intervals", type=Path, help="Interval definition file"
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output path (default: capture path with the format's suffix)",
    )
    parser.add_argument(
        "--format",
        choices=ConverterConfig.FORMATS,
        default=None,
        help="Output format (default: $MDPTRACE_FORMAT or json)",
    )
    parser.add_argument(
        "--breakpoints-out",
        type=Path,
        help="Also write the interval breakpoint addresses for the emulator",
    )
    parser.add_argument(
        "--process-name", help="Process name shown in the viewer (default M68000)"
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging"
    )
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only log errors"
    )
    return parser


def _log_level(args: argparse.Namespace) -> int:
    if args.quiet:
        return logging.ERROR
    if args.verbose >= 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    return ConverterConfig.log_level()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=_log_level(args), format="%(levelname)s %(name)s: %(message)s"
    )

    ConverterConfig.set_format(args.format)
    ConverterConfig.set_process_name(args.process_name)
    ConverterConfig.set_output_path(args.output)
    output_path = ConverterConfig.get_output_path(args.trace)

    try:
        trace_data = args.trace.read_bytes()
        symbol_data = args.symbols.read_bytes() if args.symbols else None
        interval_data = args.intervals.read_bytes() if args.intervals else None
        result = convert(trace_data, symbol_data, interval_data)
    except ConversionError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("Cannot read input: %s", e)
        return 1

    try:
        if args.breakpoints_out:
            result.registry.write_breakpoints(args.breakpoints_out)
        if ConverterConfig.output_format() == "perfetto":
            write_perfetto(output_path, result.events, result.registry.lanes)
        else:
            write_json(output_path, result.document())
    except OSError as e:
        logger.error("Cannot write output: %s", e)
        return 1
    logger.info("Saved %s", output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
