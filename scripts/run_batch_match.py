"""
Match a file of product lines against a catalog export and write the CSV report.

Usage:
    python scripts/run_batch_match.py \
        --spus catalog_spu.xlsx --skus catalog_sku.xlsx --brands brands.csv \
        --input lines.xlsx --output result.csv [--workers 4] [--diagnostic]
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from batch import compute_coverage_metrics, export_csv, run_matching
from catalog_client import brands_from_frame, load_catalog_files, read_table
from match_engine import DEFAULT_SKU_TIMEOUT, MatchService

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve product lines to catalog SPUs and SKUs.")
    parser.add_argument('--spus', required=True, help="SPU table (csv/xlsx): id, name, brand")
    parser.add_argument('--skus', required=True, help="SKU table (csv/xlsx): id, spu_id, name, capacity, color, barcodes, state")
    parser.add_argument('--brands', help="brand table (csv/xlsx): name, spell, aliases")
    parser.add_argument('--input', required=True, help="lines to match (csv/xlsx)")
    parser.add_argument('--output', required=True, help="CSV report path")
    parser.add_argument('--name-column', help="input column with the product text (detected when omitted)")
    parser.add_argument('--config-dir', help="directory with the matcher knowledge tables")
    parser.add_argument('--threshold', type=float, help="fuzzy SPU threshold (default 0.5)")
    parser.add_argument('--workers', type=int, default=1)
    parser.add_argument('--sku-timeout', type=float, default=DEFAULT_SKU_TIMEOUT)
    parser.add_argument('--zh-status', action='store_true', help="write Chinese status labels")
    parser.add_argument('--diagnostic', action='store_true', help="collect near-miss candidates for unmatched lines")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)

    catalog = load_catalog_files(args.spus, args.skus)
    service = MatchService(catalog, config_dir=args.config_dir, sku_timeout=args.sku_timeout)
    service.initialize()
    if args.brands:
        service.set_brand_vocabulary(brands_from_frame(read_table(args.brands)))
    service.set_color_vocabulary(catalog.colors())
    service.build_index()

    df_input = read_table(args.input)
    df_results = run_matching(
        df_input, service,
        name_col=args.name_column,
        threshold=args.threshold,
        max_workers=args.workers,
        diagnostic=args.diagnostic,
    )
    export_csv(df_results, args.output, localized_status=args.zh_status)

    metrics = compute_coverage_metrics(df_results)
    logger.info("Report written to %s", args.output)
    for key, value in metrics.items():
        logger.info("  %s: %s", key, value)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
