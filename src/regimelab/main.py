"""Command-line entry point: run the pipeline over a file of daily bars."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from regimelab.config.settings import Settings
from regimelab.core.contracts import PriceSeries
from regimelab.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def _text(row: pd.Series, column: str) -> str:
    value = row.get(column)
    return str(value) if pd.notna(value) else ""


def load_universe(path: Path) -> List[PriceSeries]:
    """Read bars from CSV or JSON records and group them by symbol.

    Required columns are ``symbol``, ``date`` and ``close``; ``open``,
    ``high``, ``low``, ``volume``, ``instrument_id``, ``sector`` and ``fund``
    are optional.
    """
    if path.suffix.lower() == ".json":
        frame = pd.read_json(path, orient="records")
    else:
        frame = pd.read_csv(path)

    missing = {"symbol", "date", "close"} - set(frame.columns)
    if missing:
        raise ValueError(f"{path}: missing columns {sorted(missing)}")

    universe = []
    for i, (symbol, group) in enumerate(frame.groupby("symbol", sort=True)):
        first = group.iloc[0]
        instrument_id = int(first["instrument_id"]) if "instrument_id" in group else i + 1
        universe.append(PriceSeries.from_records(
            group.to_dict(orient="records"),
            instrument_id=instrument_id,
            symbol=str(symbol),
            sector=_text(first, "sector"),
            fund=_text(first, "fund"),
        ))
    logger.info(f"Loaded {len(universe)} instruments from {path}")
    return universe


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regimelab",
        description="Regime detection, strategy backtests and position allocation",
    )
    parser.add_argument("data", type=Path, help="CSV or JSON file of daily bars")
    parser.add_argument("--config", type=Path, help="Optional YAML settings file")
    parser.add_argument("--workers", type=int, default=None, help="Parallel instruments")
    parser.add_argument("--report-dir", type=Path, help="Write Markdown reports here")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_yaml(args.config) if args.config else Settings.from_env()

    logging.basicConfig(
        level=(args.log_level or settings.logging.level).upper(),
        format=settings.logging.format,
    )

    universe = load_universe(args.data)
    result = Orchestrator(settings).run(universe, max_workers=args.workers)

    if args.report_dir:
        args.report_dir.mkdir(parents=True, exist_ok=True)
        for report in result.instruments:
            (args.report_dir / f"{report.series.symbol}_backtest.md").write_text(report.report)
        (args.report_dir / "positions.md").write_text(result.position_report)
        logger.info(f"Reports written to {args.report_dir}")

    json.dump(result.to_dict(), sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
