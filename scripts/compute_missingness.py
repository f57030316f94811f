#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
ESM Missingness Script

Profiles missing cells in the exported Block 1 and Block 2 wide tables and
compares survey completion between clinical groups.

Usage:
    python scripts/compute_missingness.py
    python scripts/compute_missingness.py --exclude-unusable
    python scripts/compute_missingness.py --groups ../data/esm/participant_groups.csv
"""

import sys
import os
import argparse
import logging
import json

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from esm.data_loader import load_group_covariates
from esm.group_comparison import format_group_result
from esm.missingness import MissingnessProfiler
from esm.reshaper import load_wide_table

import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Missingness profile of the ESM wide tables',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--input-dir', type=str, default=config.PREPROCESSED_DIR,
                        help=f'Directory with the wide tables (default: {config.PREPROCESSED_DIR})')
    parser.add_argument('--groups', type=str, default=config.GROUP_COVARIATES_PATH,
                        help=f'Group covariate CSV (default: {config.GROUP_COVARIATES_PATH})')
    parser.add_argument('--output-dir', type=str, default=config.MISSINGNESS_DIR,
                        help=f'Output directory (default: {config.MISSINGNESS_DIR})')
    parser.add_argument('--exclude-unusable', action='store_true',
                        help=f'Leave {config.UNUSABLE_VARIABLES} out of the summaries')
    parser.add_argument('--skip-groups', action='store_true',
                        help='Do not run the group completion comparison')
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
        print("ESM MISSINGNESS")
        print("=" * 80)
        print()

        excluded = (list(config.UNUSABLE_VARIABLES) if args.exclude_unusable
                    else config.get_missingness_excluded_variables())

        summaries = {}
        block1_profiler = None
        for block_name in ('block1', 'block2'):
            wide = load_wide_table(os.path.join(args.input_dir, f"esm_{block_name}_wide.csv"))
            profiler = MissingnessProfiler(wide, excluded_variables=excluded)
            gate = config.MW_GATE_VARIABLE if block_name == 'block1' else None
            profile = profiler.profile(gate_column=gate)

            for key in ('columns', 'participants', 'patterns'):
                path = os.path.join(args.output_dir, f"{block_name}_missingness_{key}.csv")
                profile[key].to_csv(path, index=False)

            summaries[block_name] = profile['summary']
            print(f"{block_name}: {profile['summary']['fraction_missing']:.1%} missing, "
                  f"{profile['summary']['n_patterns']} pattern(s)")
            if block_name == 'block1':
                block1_profiler = profiler

        if not args.skip_groups:
            groups = load_group_covariates(args.groups)
            completion = block1_profiler.group_completion(groups)
            completion['descriptives'].to_csv(
                os.path.join(args.output_dir, 'completion_by_group.csv'), index=False
            )
            summaries['completion_test'] = {
                k: v for k, v in completion.items()
                if k not in ('descriptives', 'data')
            }
            print()
            print(format_group_result(completion))

        with open(os.path.join(args.output_dir, 'missingness_summary.json'), 'w', encoding='utf-8') as f:
            json.dump(summaries, f, indent=2, default=str)

        print()
        print(f"Outputs saved to: {args.output_dir}")
        logger.info("Missingness analysis complete")
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
