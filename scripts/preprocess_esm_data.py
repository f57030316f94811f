#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
ESM Data Preprocessing Script

This script cleans the raw ESM export, maps item codes to variable names,
splits the survey blocks, verifies observation counts, removes mind-wandering
follow-ups skipped by design and writes the wide tables.

Usage:
    python scripts/preprocess_esm_data.py
    python scripts/preprocess_esm_data.py --input ../data/esm/esm_raw.csv
    python scripts/preprocess_esm_data.py --exclude-file excluded.txt --verbose
"""

import sys
import os
import argparse
import logging
import json

# Add project root to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from esm.data_loader import read_exclusion_list
from esm.metadata import PreprocessingMetadata
from esm.pipeline import run_preprocessing
from esm.reporter import IntegrityReporter
from esm.reshaper import DuplicateKeyError

import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description='Preprocess ESM (Experience Sampling Method) survey data',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Use the configured raw export
  python scripts/preprocess_esm_data.py

  # Replace the configured exclusion list
  python scripts/preprocess_esm_data.py --exclude-file excluded.txt

  # Custom output directory with verbose output
  python scripts/preprocess_esm_data.py --output-dir results/esm/tmp --verbose
        """
    )

    parser.add_argument(
        '--input',
        type=str,
        default=config.ESM_RAW_DATA_PATH,
        help=f'Raw ESM export (default: {config.ESM_RAW_DATA_PATH})'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default=config.PREPROCESSED_DIR,
        help=f'Directory for preprocessed outputs (default: {config.PREPROCESSED_DIR})'
    )

    parser.add_argument(
        '--exclude-file',
        type=str,
        default=None,
        help='File with one moniker per line; replaces the configured exclusion list'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose console output'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """
    Main preprocessing workflow.

    1. Load, clean, remap, split, verify, filter and reshape
    2. Write the integrity report
    3. Save long and wide tables
    4. Save metadata
    """
    args = parse_arguments(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Verbose mode enabled")

    os.makedirs(args.output_dir, exist_ok=True)

    try:
        print("=" * 80)
        print("ESM DATA PREPROCESSING")
        print("=" * 80)
        print()

        excluded = None
        if args.exclude_file:
            excluded = read_exclusion_list(args.exclude_file)

        # Step 1: Run stages 1-6
        print(f"[1/4] Processing raw export: {args.input}")
        result = run_preprocessing(args.input, excluded_monikers=excluded)
        print(f"      ✓ {len(result.cleaned)} observations, "
              f"{result.cleaned[config.COL_MONIKER].nunique()} participants")
        print(f"      ✓ Branching filter removed {result.filter_summary['rows_removed']} row(s)")
        print()

        # Step 2: Integrity report
        print("[2/4] Writing integrity report...")
        reporter = IntegrityReporter(
            result.integrity, args.output_dir,
            drop_log=result.drop_log, filter_summary=result.filter_summary,
        )
        report_path = reporter.generate_report()
        for name, integrity in result.integrity.items():
            mark = "✓" if integrity['is_complete'] else "⚠"
            print(f"      {mark} {name}: deficit {integrity['summary']['deficit']}")
        print(f"      ✓ Saved to: {report_path}")
        print()

        # Step 3: Tables
        print("[3/4] Saving tables...")
        outputs = {
            'esm_cleaned_long.csv': result.cleaned,
            'esm_block1_long.csv': result.block1_filtered,
            'esm_block1_wide.csv': result.block1_wide,
            'esm_block2_wide.csv': result.block2_wide,
        }
        for filename, table in outputs.items():
            path = os.path.join(args.output_dir, filename)
            table.to_csv(path, index=False)
            print(f"      ✓ {filename}: {len(table)} rows")
        print()

        # Step 4: Metadata
        print("[4/4] Saving metadata...")
        metadata = PreprocessingMetadata().generate_metadata(
            result.cleaned,
            drop_log=result.drop_log,
            block_sizes={name: len(block) for name, block in result.blocks.items()},
        )
        metadata['branching_logic']['rows_removed'] = result.filter_summary['rows_removed']
        if excluded is not None:
            metadata['loading']['excluded_monikers'] = excluded
            metadata['loading']['exclude_file'] = args.exclude_file

        metadata_json = os.path.join(args.output_dir, 'preprocessing_metadata.json')
        with open(metadata_json, 'w', encoding='utf-8') as f:
            json.dump(metadata, f, indent=2)
        print(f"      ✓ Saved to: {metadata_json}")
        print()
        print("=" * 80)

        logger.info("Preprocessing complete")
        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        print(f"\n[ERROR] {e}")
        return 1

    except DuplicateKeyError as e:
        logger.error(f"Duplicate keys: {e}", exc_info=args.verbose)
        print(f"\n[ERROR] {e}")
        print("\nA block contains repeated (moniker, time, variable) keys; check the filters.")
        return 1

    except ValueError as e:
        logger.error(f"Validation error: {e}")
        print(f"\n[ERROR] {e}")
        print("\nPlease check that the input file has the expected columns.")
        return 1

    except Exception as e:
        logger.error(f"Unexpected error: {type(e).__name__}: {e}", exc_info=True)
        print(f"\n[ERROR] Unexpected error: {type(e).__name__}")
        print(f"        {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
