#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
ESM Analysis Pipeline Orchestrator

Single entry point for the ESM analysis: preprocessing (cleaning, integrity
checks, wide tables), missingness profiling and affect instability. Stages
run in order and each one checks that its inputs exist before it starts.

Usage:
    # Run complete pipeline
    python pipelines/run_esm_analysis.py

    # Run specific stages
    python pipelines/run_esm_analysis.py --stages preprocessing missingness

    # Run from a specific stage onward
    python pipelines/run_esm_analysis.py --from-stage instability

    # Dry run (validate without executing)
    python pipelines/run_esm_analysis.py --dry-run
"""

import argparse
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Add project root to path (pipelines/ is one level below root)
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / 'scripts'))

import config

STAGE_NAMES = ['preprocessing', 'missingness', 'instability']
CRITICAL_STAGES = ['preprocessing']


class PipelineValidator:
    """Validates stage inputs before execution."""

    def __init__(self, logger, raw_path: str, preprocessed_dir: str, groups_path: str):
        self.logger = logger
        self.raw_path = Path(raw_path)
        self.preprocessed_dir = Path(preprocessed_dir)
        self.groups_path = Path(groups_path)

    def validate_stage_inputs(self, stage_name: str) -> Tuple[bool, str]:
        """
        Validate inputs required for a specific stage.

        Returns:
            Tuple of (is_valid, error_message)
        """
        validators = {
            'preprocessing': self._validate_raw_data,
            'missingness': self._validate_wide_tables,
            'instability': self._validate_wide_tables,
        }
        validator = validators.get(stage_name)
        if validator:
            return validator()
        return True, ""

    def _validate_raw_data(self) -> Tuple[bool, str]:
        if not self.raw_path.exists():
            return False, (
                f"Raw ESM export not found: {self.raw_path}\n"
                "Please place the export at the configured location or pass --input."
            )
        self.logger.debug(f"Raw export found: {self.raw_path}")
        return True, ""

    def _validate_wide_tables(self) -> Tuple[bool, str]:
        required = [
            self.preprocessed_dir / 'esm_block1_wide.csv',
            self.preprocessed_dir / 'esm_block2_wide.csv',
            self.groups_path,
        ]
        missing = [str(p) for p in required if not p.exists()]
        if missing:
            return False, (
                "Missing required files:\n" +
                "\n".join(f"  - {f}" for f in missing) +
                "\n\nRun preprocessing first:\n"
                "  python pipelines/run_esm_analysis.py --stages preprocessing"
            )
        self.logger.debug("Wide tables and group covariates found")
        return True, ""


class ESMAnalysisPipeline:
    """
    Orchestrates the ESM analysis stages.

    Attributes:
        logger: Logger writing to the console and the execution log
        validator: PipelineValidator instance
        stages: List of (stage_name, stage_function) tuples
        results: Stage name -> status ('success', 'failed', 'skipped', 'validated')

    Example:
        >>> pipeline = ESMAnalysisPipeline()
        >>> pipeline.run(stages=['preprocessing'])
    """

    def __init__(self, raw_path: Optional[str] = None, groups_path: Optional[str] = None,
                 results_dir: Optional[str] = None, exclude_file: Optional[str] = None,
                 verbose: bool = False):
        """
        Initialize pipeline orchestrator.

        Args:
            raw_path: Raw ESM export (default: config.ESM_RAW_DATA_PATH)
            groups_path: Group covariates (default: config.GROUP_COVARIATES_PATH)
            results_dir: Root output directory (default: config.ESM_RESULTS_DIR)
            exclude_file: Optional exclusion list passed to preprocessing
            verbose: Enable debug logging on the console
        """
        self.raw_path = raw_path or config.ESM_RAW_DATA_PATH
        self.groups_path = groups_path or config.GROUP_COVARIATES_PATH
        self.results_dir = Path(results_dir or config.ESM_RESULTS_DIR)
        self.exclude_file = exclude_file

        self.preprocessed_dir = self.results_dir / 'preprocessed'
        self.missingness_dir = self.results_dir / 'missingness'
        self.instability_dir = self.results_dir / 'instability'
        self.log_path = self.results_dir / 'pipeline_execution.log'

        self.logger = self._setup_logging(verbose)
        self.validator = PipelineValidator(
            self.logger, self.raw_path, str(self.preprocessed_dir), self.groups_path
        )
        self.stages = self._define_stages()
        self.results: Dict[str, str] = {}

    def _setup_logging(self, verbose: bool = False) -> logging.Logger:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        level = logging.DEBUG if verbose else logging.INFO

        file_handler = logging.FileHandler(self.log_path, mode='w', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)

        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        logger = logging.getLogger('esm_pipeline')
        logger.setLevel(logging.DEBUG)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.addHandler(file_handler)
        logger.addHandler(console_handler)

        return logger

    def _define_stages(self) -> List[Tuple[str, callable]]:
        return [
            ('preprocessing', self._run_preprocessing),
            ('missingness', self._run_missingness),
            ('instability', self._run_instability),
        ]

    def run(self, stages: Optional[List[str]] = None,
            skip_stages: Optional[List[str]] = None,
            from_stage: Optional[str] = None,
            dry_run: bool = False) -> Dict[str, str]:
        """
        Execute pipeline stages.

        Args:
            stages: Specific stages to run (None = all)
            skip_stages: Stages to skip
            from_stage: Start from this stage onward
            dry_run: Validate without executing

        Returns:
            Dictionary mapping stage names to status
        """
        self.logger.info("=" * 80)
        self.logger.info("ESM ANALYSIS PIPELINE")
        self.logger.info("=" * 80)
        self.logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        self.logger.info(f"Log file: {self.log_path}")
        if dry_run:
            self.logger.info("DRY RUN MODE - Validation only, no execution")
        self.logger.info("=" * 80)

        stages_to_run = self._determine_stages(stages, skip_stages, from_stage)
        self.logger.info(f"Stages to execute: {', '.join(stages_to_run)}")

        for i, (stage_name, stage_func) in enumerate(self.stages, 1):
            if stage_name not in stages_to_run:
                self.results[stage_name] = 'skipped'
                continue

            self.logger.info(f"\nStage {i}/{len(self.stages)}: {stage_name.upper()}")
            self.logger.info("-" * 80)

            is_valid, error_msg = self.validator.validate_stage_inputs(stage_name)
            if not is_valid:
                self.logger.error(f"Validation failed for stage '{stage_name}':")
                self.logger.error(error_msg)
                self.results[stage_name] = 'failed'
                if stage_name in CRITICAL_STAGES:
                    self.logger.error("Critical stage failed. Stopping pipeline.")
                    break
                self.logger.warning("Non-critical stage failed. Continuing...")
                continue

            if dry_run:
                self.logger.info(f"✓ Validation passed for '{stage_name}'")
                self.results[stage_name] = 'validated'
                continue

            start_time = time.time()
            try:
                stage_func()
                elapsed = time.time() - start_time
                self.logger.info(f"✓ Stage '{stage_name}' completed ({elapsed:.1f}s)")
                self.results[stage_name] = 'success'
            except Exception as e:
                elapsed = time.time() - start_time
                self.logger.error(f"✗ Stage '{stage_name}' failed ({elapsed:.1f}s): {e}", exc_info=True)
                self.results[stage_name] = 'failed'
                if stage_name in CRITICAL_STAGES:
                    self.logger.error("Critical stage failed. Stopping pipeline.")
                    break
                self.logger.warning("Non-critical stage failed. Continuing...")

        self._print_summary()
        return self.results

    def _determine_stages(self, stages: Optional[List[str]],
                          skip_stages: Optional[List[str]],
                          from_stage: Optional[str]) -> List[str]:
        all_stage_names = [name for name, _ in self.stages]

        if stages:
            return [s for s in stages if s in all_stage_names]

        if from_stage:
            if from_stage not in all_stage_names:
                self.logger.error(f"Invalid stage name: {from_stage}")
                return []
            stages_to_run = all_stage_names[all_stage_names.index(from_stage):]
        else:
            stages_to_run = list(all_stage_names)

        if skip_stages:
            stages_to_run = [s for s in stages_to_run if s not in skip_stages]
        return stages_to_run

    @staticmethod
    def _check_exit(name: str, exit_code: int):
        if exit_code != 0:
            raise RuntimeError(f"{name} exited with status {exit_code}")

    def _run_preprocessing(self):
        self.logger.info("Running ESM data preprocessing...")
        from preprocess_esm_data import main as preprocess_main

        argv = ['--input', str(self.raw_path), '--output-dir', str(self.preprocessed_dir)]
        if self.exclude_file:
            argv += ['--exclude-file', self.exclude_file]
        self._check_exit('preprocess_esm_data.py', preprocess_main(argv))

    def _run_missingness(self):
        self.logger.info("Profiling missingness...")
        from compute_missingness import main as missingness_main

        argv = ['--input-dir', str(self.preprocessed_dir), '--groups', str(self.groups_path),
                '--output-dir', str(self.missingness_dir)]
        self._check_exit('compute_missingness.py', missingness_main(argv))

    def _run_instability(self):
        self.logger.info("Computing affect instability...")
        from compute_instability import main as instability_main

        argv = ['--input', str(self.preprocessed_dir / 'esm_block1_wide.csv'),
                '--groups', str(self.groups_path), '--output-dir', str(self.instability_dir)]
        self._check_exit('compute_instability.py', instability_main(argv))

    def _print_summary(self):
        self.logger.info("\n" + "=" * 80)
        self.logger.info("PIPELINE EXECUTION SUMMARY")
        self.logger.info("=" * 80)

        statuses = list(self.results.values())
        self.logger.info(f"Total stages: {len(statuses)}")
        self.logger.info(f"  Successful: {statuses.count('success')}")
        self.logger.info(f"  Failed: {statuses.count('failed')}")
        self.logger.info(f"  Skipped: {statuses.count('skipped')}")

        for stage_name, status in self.results.items():
            symbol = "✓" if status in ('success', 'validated') else "✗" if status == 'failed' else "⊘"
            self.logger.info(f"  {symbol} {stage_name}: {status}")

        self.logger.info("=" * 80)
        self.logger.info(f"End time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        self.logger.info("=" * 80)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description='Run ESM analysis pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run complete pipeline
  python pipelines/run_esm_analysis.py

  # Skip the instability stage
  python pipelines/run_esm_analysis.py --skip-stages instability

  # Use a custom exclusion list
  python pipelines/run_esm_analysis.py --exclude-file excluded.txt
        """
    )
    parser.add_argument('--stages', nargs='+', choices=STAGE_NAMES,
                        help='Specific stages to run')
    parser.add_argument('--skip-stages', nargs='+', choices=STAGE_NAMES,
                        help='Stages to skip')
    parser.add_argument('--from-stage', choices=STAGE_NAMES,
                        help='Start from this stage onward')
    parser.add_argument('--input', type=str, default=None,
                        help='Raw ESM export (default: config.ESM_RAW_DATA_PATH)')
    parser.add_argument('--groups', type=str, default=None,
                        help='Group covariate CSV (default: config.GROUP_COVARIATES_PATH)')
    parser.add_argument('--results-dir', type=str, default=None,
                        help='Root output directory (default: config.ESM_RESULTS_DIR)')
    parser.add_argument('--exclude-file', type=str, default=None,
                        help='One moniker per line; replaces the configured exclusion list')
    parser.add_argument('--dry-run', action='store_true',
                        help='Validate without executing')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose output')
    return parser.parse_args(argv)


def main(argv=None):
    """Main execution function."""
    args = parse_arguments(argv)

    pipeline = ESMAnalysisPipeline(
        raw_path=args.input,
        groups_path=args.groups,
        results_dir=args.results_dir,
        exclude_file=args.exclude_file,
        verbose=args.verbose,
    )

    try:
        results = pipeline.run(
            stages=args.stages,
            skip_stages=args.skip_stages,
            from_stage=args.from_stage,
            dry_run=args.dry_run,
        )
        return 1 if 'failed' in results.values() else 0
    except KeyboardInterrupt:
        pipeline.logger.info("Pipeline interrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
