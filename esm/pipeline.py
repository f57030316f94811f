# -*- coding: utf-8 -*-
"""
ESM Pipeline Module

Runs every stage in memory, from the raw export to MSSD records, and returns
the intermediate tables as named fields so that each stage consumes only the
complete output of the previous one.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import pandas as pd

import config
from esm.block_splitter import BlockSplitter
from esm.branching_filter import filter_branching_logic
from esm.data_loader import ESMDataLoader
from esm.instability import InstabilityCalculator
from esm.missingness import MissingnessProfiler
from esm.remapper import VariableRemapper
from esm.reshaper import pivot_to_wide
from esm.validator import ESMIntegrityValidator

logger = logging.getLogger(__name__)


@dataclass
class ESMPipelineResult:
    cleaned: pd.DataFrame
    blocks: Dict[str, pd.DataFrame]
    block1_filtered: pd.DataFrame
    integrity: Dict[str, Dict[str, Any]]
    block1_wide: pd.DataFrame
    block2_wide: pd.DataFrame
    drop_log: Dict[str, int] = field(default_factory=dict)
    filter_summary: Dict[str, int] = field(default_factory=dict)
    missingness: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    mssd: Optional[pd.DataFrame] = None
    group_comparisons: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def verify_block(data: pd.DataFrame, block_name: str,
                 participants: Iterable[str]) -> Dict[str, Any]:
    """
    Integrity check of one block against its configured cardinality.

    Time keys are checked against the design grid, so a key absent for every
    participant is still reported.

    Args:
        data (pd.DataFrame): Long observations of the block
        block_name (str): 'block1' or 'block2'
        participants (Iterable[str]): Roster of retained participants

    Returns:
        ESMIntegrityValidator.validate_all() output
    """
    n_timepoints = config.BLOCK_TIMEPOINTS[block_name]
    per_participant = config.get_observations_per_participant(block_name)
    validator = ESMIntegrityValidator(
        data,
        observations_per_participant=per_participant,
        variables_per_timepoint=per_participant // n_timepoints,
        participants=participants,
        expected_time_keys=config.get_expected_time_keys(block_name),
    )
    logger.info(f"Verifying {block_name}: {per_participant} observations per participant expected")
    return validator.validate_all()


def run_preprocessing(file_path: Optional[str] = None, raw: Optional[pd.DataFrame] = None,
                      excluded_monikers: Optional[Iterable[str]] = None) -> ESMPipelineResult:
    """
    Run stages 1 to 6: load, remap, split, verify, filter and reshape.

    Block 1 is verified before the branching filter: the filter removes rows
    by construction, so counts after it cannot match the fixed cardinality.

    Args:
        file_path (str, optional): Raw CSV export. Ignored when raw is given
        raw (pd.DataFrame, optional): Raw rows already in memory (all text)
        excluded_monikers (Iterable[str], optional): Replaces
            config.EXCLUDED_MONIKERS

    Returns:
        ESMPipelineResult without missingness and instability fields

    Raises:
        DuplicateKeyError: If a block has duplicated (moniker, time, variable) keys
    """
    logger.info("[1/8] Loading and normalizing raw data")
    loader = ESMDataLoader(file_path, excluded_monikers=excluded_monikers)
    if raw is None:
        normalized = loader.load_data()
    else:
        normalized = loader.clean(raw)

    logger.info("[2/8] Remapping item codes to variables")
    cleaned = VariableRemapper().remap(normalized)

    logger.info("[3/8] Splitting blocks")
    splitter = BlockSplitter()
    blocks = splitter.split(cleaned)

    logger.info("[4/8] Verifying block integrity")
    participants = sorted(cleaned[config.COL_MONIKER].unique())
    integrity = {
        name: verify_block(block, name, participants)
        for name, block in blocks.items()
    }

    logger.info("[5/8] Applying branching-logic filter to Block 1")
    block1_filtered = filter_branching_logic(blocks['block1'])
    filter_summary = {
        'rows_before': len(blocks['block1']),
        'rows_after': len(block1_filtered),
        'rows_removed': len(blocks['block1']) - len(block1_filtered),
    }

    logger.info("[6/8] Reshaping to wide")
    block1_wide = pivot_to_wide(block1_filtered, variables=splitter.block1_variables)
    block2_wide = pivot_to_wide(blocks['block2'], variables=config.get_block2_variables())

    return ESMPipelineResult(
        cleaned=cleaned,
        blocks=blocks,
        block1_filtered=block1_filtered,
        integrity=integrity,
        block1_wide=block1_wide,
        block2_wide=block2_wide,
        drop_log=dict(loader.drop_log),
        filter_summary=filter_summary,
    )


def run_pipeline(file_path: Optional[str] = None, raw: Optional[pd.DataFrame] = None,
                 groups: Optional[pd.DataFrame] = None,
                 excluded_monikers: Optional[Iterable[str]] = None,
                 gate_column: Optional[str] = None) -> ESMPipelineResult:
    """
    Run stages 1 to 8.

    Args:
        file_path (str, optional): Raw CSV export. Ignored when raw is given
        raw (pd.DataFrame, optional): Raw rows already in memory (all text)
        groups (pd.DataFrame, optional): Group covariates. Without them,
            group completion and group comparisons are skipped
        excluded_monikers (Iterable[str], optional): Replaces
            config.EXCLUDED_MONIKERS
        gate_column (str, optional): Block 1 missingness pattern gate.
            Defaults to config.MW_GATE_VARIABLE

    Returns:
        ESMPipelineResult

    Example:
        >>> result = run_pipeline('data/esm/esm_raw.csv', groups=covariates)
        >>> result.mssd.head()
    """
    gate_column = config.MW_GATE_VARIABLE if gate_column is None else gate_column
    result = run_preprocessing(file_path, raw=raw, excluded_monikers=excluded_monikers)

    logger.info("[7/8] Profiling missingness")
    for name, wide in (('block1', result.block1_wide), ('block2', result.block2_wide)):
        profiler = MissingnessProfiler(wide)
        gate = gate_column if name == 'block1' and gate_column in wide.columns else None
        result.missingness[name] = profiler.profile(gate_column=gate)
        if groups is not None and name == 'block1':
            result.group_comparisons['completion'] = profiler.group_completion(groups)

    logger.info("[8/8] Computing affect instability")
    calculator = InstabilityCalculator(result.block1_wide)
    result.mssd = calculator.compute_mssd(
        groups=groups, participants=result.cleaned[config.COL_MONIKER].unique()
    )
    if groups is not None:
        for polarity, comparison in calculator.compare_groups(result.mssd).items():
            result.group_comparisons[f"mssd_{polarity}"] = comparison

    logger.info("Pipeline complete")
    return result
