"""Build ``rrp_lookup.json`` from the Donesol CSV exports.

    soilinfo-build-rrp --data-dir data/BDDonesol --out public/rrp_lookup.json
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from ..settings import LOG_LEVEL
from ..utils.logging import get_logger, setup_logging
from .builder import build_lookup_file

logger = get_logger(__name__)

DEFAULT_DATA_DIR = Path("data/BDDonesol")
DEFAULT_OUT = Path("public/rrp_lookup.json")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="soilinfo-build-rrp",
        description="Join the Donesol study/unit/component tables into a static RRP lookup.",
    )
    parser.add_argument("--data-dir", type=Path, default=DEFAULT_DATA_DIR, help="Directory holding the four table_*.csv files")
    parser.add_argument("--out", type=Path, default=DEFAULT_OUT, help="Lookup JSON to write")
    parser.add_argument("--sld", type=Path, default=None, help="Optional SLD style to read code_coul colours from")
    parser.add_argument("--colors-out", type=Path, default=None, help="Optional JSON file for the SLD colour map")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.colors_out is not None and args.sld is None:
        logger.error("--colors-out needs --sld")
        return 2

    try:
        lookup = asyncio.run(
            build_lookup_file(args.data_dir, args.out, sld_path=args.sld, colors_out_path=args.colors_out)
        )
    except OSError as exc:
        logger.error("RRP lookup build failed: %s", exc, exc_info=True)
        return 1

    logger.info("Lookup entries: %d", len(lookup))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
