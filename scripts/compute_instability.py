#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
ESM Affect Instability Script

Computes MSSD of positive and negative affect per participant from the
exported Block 1 wide table, compares groups, and writes the composite trend
table used for plotting.

Usage:
    python scripts/compute_instability.py
    python scripts/compute_instability.py --output-dir results/esm/instability --verbose
"""

import sys
import os
import argparse
import logging
import json

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from esm.data_loader import load_group_covariates
from esm.group_comparison import format_group_result
from esm.instability import InstabilityCalculator
from esm.reshaper import load_wide_table

import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    default_input = os.path.join(config.PREPROCESSED_DIR, 'esm_block1_wide.csv')
    parser = argparse.ArgumentParser(
        description='Affect instability (MSSD) from the ESM Block 1 wide table',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--input', type=str, default=default_input,
                        help=f'Block 1 wide table (default: {default_input})')
    parser.add_argument('--groups', type=str, default=config.GROUP_COVARIATES_PATH,
                        help=f'Group covariate CSV (default: {config.GROUP_COVARIATES_PATH})')
    parser.add_argument('--output-dir', type=str, default=config.INSTABILITY_DIR,
                        help=f'Output directory (default: {config.INSTABILITY_DIR})')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose console output')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    os.makedirs(args.output_dir, exist_ok=True)

    try:
        print("=" * 80)
        print("ESM AFFECT INSTABILITY")
        print("=" * 80)
        print()

        print("[1/3] Loading data...")
        wide = load_wide_table(args.input)
        groups = load_group_covariates(args.groups)
        print(f"      ✓ {len(wide)} rows, {wide[config.COL_MONIKER].nunique()} participants")
        print()

        print("[2/3] Computing MSSD...")
        calculator = InstabilityCalculator(wide)
        mssd = calculator.compute_mssd(groups=groups)
        mssd_path = os.path.join(args.output_dir, 'mssd_by_participant.csv')
        mssd.to_csv(mssd_path, index=False)

        trend = calculator.compute_composite_trend(groups)
        trend_path = os.path.join(args.output_dir, 'composite_trend_by_group.csv')
        trend.to_csv(trend_path, index=False)

        n_undefined = int(mssd['mssd'].isna().sum())
        print(f"      ✓ {len(mssd)} records ({n_undefined} undefined)")
        print()

        print("[3/3] Comparing groups...")
        comparisons = calculator.compare_groups(mssd)
        summary = {}
        for polarity, result in comparisons.items():
            result['descriptives'].to_csv(
                os.path.join(args.output_dir, f"mssd_{polarity}_by_group.csv"), index=False
            )
            summary[polarity] = {k: v for k, v in result.items() if k != 'descriptives'}
            print(f"      {format_group_result(result)}")

        with open(os.path.join(args.output_dir, 'mssd_group_tests.json'), 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2, default=str)

        print()
        print(f"Outputs saved to: {args.output_dir}")
        logger.info("Instability analysis complete")
        return 0

    except (FileNotFoundError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"\n[ERROR] {e}")
        return 1

    except Exception as e:
        logger.error(f"Unexpected error: {type(e).__name__}: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
