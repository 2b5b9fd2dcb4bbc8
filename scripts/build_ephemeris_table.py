# ============================================================
# Script : scripts/build_ephemeris_table.py
# Purpose: precompute the per-date ephemeris table read by the "table" chart tier
# Usage  : python scripts/build_ephemeris_table.py --start 1940-01-01 --end 2010-12-31 \
#              --kernel de421.bsp --out data/ephemeris_table.json
# Needs  : pip install -e .[tables]   (Skyfield)
# ============================================================
from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Allow running as a standalone script (python scripts/build_ephemeris_table.py)
SYS_ROOT = Path(__file__).resolve().parents[1]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from matchengine.core.ephemeris_adapter import EphemerisError  # noqa: E402
from matchengine.core.ephemeris_table import build_table  # noqa: E402

log = logging.getLogger("build_ephemeris_table")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Build the precomputed ephemeris table (JSON)")
    parser.add_argument("--start", type=date.fromisoformat, required=True, help="first date, YYYY-MM-DD")
    parser.add_argument("--end", type=date.fromisoformat, required=True, help="last date, YYYY-MM-DD")
    parser.add_argument("--kernel", default="de421.bsp", help="JPL kernel path or name")
    parser.add_argument("--out", default="data/ephemeris_table.json", help="output JSON path")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        table = build_table(args.start, args.end, kernel=args.kernel)
    except (EphemerisError, ValueError) as e:
        log.error("build failed: %s", e)
        return 1
    table.save(args.out)
    log.info("wrote %d dates to %s", len(table), args.out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
