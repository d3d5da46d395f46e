"""
Export customer usage and billing charts as standalone HTML.

Loads connections, bills and readings through the same store the console
uses, generates the simulated usage series, and writes Plotly charts to the
`Output/` folder:

- Usage bars per period (7 days, 30 days, 6 months)
- Usage split by connection type
- Bills by date, coloured by payment status (when bills are available)

Usage:
  python visualize.py [--source api|local] [--customer ID] [--seed N]

Dependencies: pandas, plotly, httpx (declared in pyproject.toml)
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from waterdesk.charts import bills_figure, distribution_figure, usage_figure
from waterdesk.config import get_settings
from waterdesk.logging import configure_logging
from waterdesk.store import ConsoleStore
from waterdesk.usage import USAGE_PERIODS, customer_summary, generate_usage_data, user_bills

OUT_DIR = Path("Output")


def write_figure(fig, name: str, out_dir: Path = OUT_DIR) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{name}.html"
    fig.write_html(str(out_path), include_plotlyjs="cdn")
    return out_path


def load_collections(store: ConsoleStore, keys: Sequence[str] = ("connections", "bills", "readings")) -> Dict[str, List[dict]]:
    """Current records per resource; a resource that fails to load is empty."""
    return {key: list(store.records(key)) for key in keys}


def export_usage(df: pd.DataFrame, out_dir: Path = OUT_DIR) -> List[Path]:
    return [write_figure(usage_figure(df, period), f"usage_{period}", out_dir) for period in USAGE_PERIODS]


def export_distribution(out_dir: Path = OUT_DIR) -> Path:
    return write_figure(distribution_figure(), "usage_distribution", out_dir)


def export_bills(bills: List[dict], customer: Optional[str] = None, out_dir: Path = OUT_DIR) -> Optional[Path]:
    if customer:
        bills = user_bills(bills, customer)
    if not bills:
        return None
    suffix = f"_{customer}" if customer else ""
    return write_figure(bills_figure(bills), f"bills{suffix}", out_dir)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Generate usage and billing charts.")
    parser.add_argument("--source", choices=["api", "local"], default=None, help="Where connections are read from")
    parser.add_argument("--customer", type=str, default=None, help="Optional customer (UserID) filter")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the simulated usage series")
    parser.add_argument("--out", type=Path, default=OUT_DIR, help="Output folder")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.source:
        settings = settings.model_copy(update={"connections_backend": args.source})
    configure_logging(settings)

    store = ConsoleStore(settings)
    try:
        data = load_collections(store)
    finally:
        store.close()

    seed = args.seed if args.seed is not None else settings.usage_seed
    usage_df = generate_usage_data(seed)

    outputs: list[tuple[str, Path | None]] = []
    for period, path in zip(USAGE_PERIODS, export_usage(usage_df, args.out)):
        outputs.append((f"usage_{period}", path))
    outputs.append(("distribution", export_distribution(args.out)))
    outputs.append(("bills", export_bills(data["bills"], args.customer, args.out)))

    print("Saved plots:")
    for name, path in outputs:
        if path:
            print(f"- {name}: {path}")
        else:
            print(f"- {name}: (skipped - no data)")

    if args.customer:
        summary = customer_summary(args.customer, data["connections"], data["bills"], data["readings"])
        print(f"Customer {summary['user_id']}:")
        for field in ("connections", "active_connections", "total_billed", "outstanding", "daily_average"):
            print(f"- {field}: {summary[field]}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
