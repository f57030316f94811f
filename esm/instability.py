# -*- coding: utf-8 -*-
"""
ESM Instability Calculator Module

This module computes affect instability from the Block 1 wide table. Each
row gets a positive and a negative affect composite; within a participant,
rows are put in chronological order and the mean squared successive
difference (reported as its square root, MSSD) is computed per polarity.

MSSD = sqrt(mean((x[t] - x[t-1])^2)) over consecutive pairs where both
composites are present.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

import config
from esm.data_loader import sort_by_time_key
from esm.group_comparison import compare_groups

logger = logging.getLogger(__name__)


def compute_mssd(values: np.ndarray, min_valid: Optional[int] = None) -> Dict[str, Any]:
    """
    MSSD of one ordered series.

    Args:
        values: Composite scores in sequence order; NaN marks a missing row
        min_valid: Fewest non-missing points needed. Defaults to
            config.MIN_VALID_TIMEPOINTS

    Returns:
        Dictionary with mssd (NaN when undefined), n_valid_points and
        n_valid_pairs

    Example:
        >>> compute_mssd(np.array([2.0, 4.0, 2.0]))['mssd']
        2.0
    """
    min_valid = config.MIN_VALID_TIMEPOINTS if min_valid is None else min_valid
    values = np.asarray(values, dtype=float)

    diffs = np.diff(values)
    valid_diffs = diffs[~np.isnan(diffs)]
    n_points = int((~np.isnan(values)).sum())

    if n_points < min_valid or valid_diffs.size == 0:
        mssd = float('nan')
    else:
        mssd = float(np.sqrt(np.mean(valid_diffs ** 2)))

    return {
        'mssd': mssd,
        'n_valid_points': n_points,
        'n_valid_pairs': int(valid_diffs.size),
    }


class InstabilityCalculator:
    """
    Computes per-participant MSSD of affect composites.

    Attributes:
        wide (pd.DataFrame): Block 1 wide table
        composites (Dict[str, List[str]]): Polarity -> item columns
        min_valid_timepoints (int): Fewest valid points for a defined MSSD

    Example:
        >>> calculator = InstabilityCalculator(block1_wide)
        >>> records = calculator.compute_mssd(groups=covariates)
        >>> comparisons = calculator.compare_groups(records)
    """

    def __init__(self, wide: pd.DataFrame,
                 composites: Optional[Dict[str, List[str]]] = None,
                 min_valid_timepoints: Optional[int] = None):
        self.wide = wide
        self.composites = dict(config.AFFECT_COMPOSITES if composites is None else composites)
        self.min_valid_timepoints = (
            config.MIN_VALID_TIMEPOINTS if min_valid_timepoints is None
            else int(min_valid_timepoints)
        )

        missing = sorted({
            item for items in self.composites.values() for item in items
            if item not in wide.columns
        })
        if missing:
            logger.error(f"Composite items missing from wide table: {missing}")
            raise ValueError(f"Composite items missing from wide table: {missing}")

        logger.info(
            f"Initialized InstabilityCalculator with polarities {list(self.composites)}"
        )

    def compute_composites(self) -> pd.DataFrame:
        """
        Add one composite column per polarity and a per-participant seq_index.

        Composites are row means that skip missing items; a composite is
        missing only when all of its items are. Rows are stably sorted by
        numeric (testing_day, timepoint) within participant before
        seq_index (1..K) is assigned.

        Returns:
            pd.DataFrame: moniker, time, seq_index and one column per polarity
        """
        scored = self.wide[[config.COL_MONIKER, config.COL_TIME]].copy()
        for polarity, items in self.composites.items():
            block = self.wide[items].apply(pd.to_numeric, errors='coerce')
            scored[polarity] = block.mean(axis=1, skipna=True)

        scored = sort_by_time_key(scored, by=[config.COL_MONIKER]).reset_index(drop=True)
        scored.insert(
            2, config.COL_SEQ_INDEX,
            scored.groupby(config.COL_MONIKER).cumcount() + 1,
        )
        return scored

    def compute_successive_differences(self, scored: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """
        Successive differences of each composite within participant.

        The first row of each participant has no difference (NaN).

        Returns:
            pd.DataFrame: compute_composites() output plus one
                '<polarity>_diff' column per polarity
        """
        if scored is None:
            scored = self.compute_composites()
        scored = scored.copy()
        for polarity in self.composites:
            scored[f"{polarity}_diff"] = scored.groupby(config.COL_MONIKER)[polarity].diff()
        return scored

    def compute_mssd(self, groups: Optional[pd.DataFrame] = None,
                     group_col: Optional[str] = None,
                     participants: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """
        One record per participant and polarity.

        Participants with too few valid timepoints keep a record with a
        missing MSSD. Roster participants without any Block 1 row get
        mssd=NaN and zero valid points and pairs.

        Args:
            groups (pd.DataFrame, optional): Covariates keyed by moniker
            group_col (str, optional): Defaults to config.GROUP_COLUMN
            participants (Iterable[str], optional): Participant roster.
                Defaults to the monikers in the wide table

        Returns:
            pd.DataFrame: Columns moniker, polarity, mssd, n_valid_points,
                n_valid_pairs and, with groups, the group label
        """
        group_col = config.GROUP_COLUMN if group_col is None else group_col
        scored = self.compute_composites()

        records = []
        for moniker, participant in scored.groupby(config.COL_MONIKER, sort=True):
            for polarity in self.composites:
                result = compute_mssd(participant[polarity].to_numpy(),
                                      self.min_valid_timepoints)
                records.append({config.COL_MONIKER: moniker, 'polarity': polarity, **result})

        mssd = pd.DataFrame(
            records,
            columns=[config.COL_MONIKER, 'polarity', 'mssd', 'n_valid_points', 'n_valid_pairs'],
        )

        if participants is not None:
            roster = sorted(set(participants) | set(scored[config.COL_MONIKER]))
            index = pd.MultiIndex.from_product(
                [roster, list(self.composites)], names=[config.COL_MONIKER, 'polarity']
            )
            mssd = mssd.set_index([config.COL_MONIKER, 'polarity']).reindex(index)
            mssd[['n_valid_points', 'n_valid_pairs']] = (
                mssd[['n_valid_points', 'n_valid_pairs']].fillna(0).astype(int)
            )
            mssd = mssd.reset_index()
            n_absent = len(set(roster) - set(scored[config.COL_MONIKER]))
            if n_absent:
                logger.warning(f"{n_absent} participant(s) without Block 1 rows")

        n_undefined = int(mssd['mssd'].isna().sum())
        if n_undefined:
            logger.warning(f"MSSD undefined for {n_undefined} participant-polarity record(s)")

        if groups is not None:
            labels = groups[[config.COL_MONIKER, group_col]].drop_duplicates(config.COL_MONIKER)
            mssd = mssd.merge(labels, on=config.COL_MONIKER, how='left')
            n_unlabelled = mssd.loc[mssd[group_col].isna(), config.COL_MONIKER].nunique()
            if n_unlabelled:
                logger.warning(f"{n_unlabelled} participant(s) without a group label")

        logger.info(
            f"Computed MSSD for {mssd[config.COL_MONIKER].nunique()} participants "
            f"x {len(self.composites)} polarities"
        )
        return mssd

    def compare_groups(self, mssd: pd.DataFrame,
                       group_col: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """
        Group comparison of MSSD for each polarity.

        Args:
            mssd (pd.DataFrame): compute_mssd() output with group labels
            group_col (str, optional): Defaults to config.GROUP_COLUMN

        Returns:
            Dict mapping polarity -> compare_groups() result
        """
        group_col = config.GROUP_COLUMN if group_col is None else group_col
        if group_col not in mssd.columns:
            raise ValueError(f"MSSD table has no '{group_col}' column; pass groups to compute_mssd()")

        results = {}
        for polarity in self.composites:
            subset = mssd[mssd['polarity'] == polarity].rename(columns={'mssd': f"mssd_{polarity}"})
            results[polarity] = compare_groups(subset, f"mssd_{polarity}", group_col)
        return results

    def compute_composite_trend(self, groups: pd.DataFrame,
                                group_col: Optional[str] = None) -> pd.DataFrame:
        """
        Mean, SD and n of each composite per seq_index and group.

        Args:
            groups (pd.DataFrame): Covariates keyed by moniker
            group_col (str, optional): Defaults to config.GROUP_COLUMN

        Returns:
            pd.DataFrame: Columns group, seq_index, polarity, mean, sd, n
        """
        group_col = config.GROUP_COLUMN if group_col is None else group_col
        scored = self.compute_composites().merge(
            groups[[config.COL_MONIKER, group_col]], on=config.COL_MONIKER, how='inner'
        )

        long = scored.melt(
            id_vars=[group_col, config.COL_SEQ_INDEX],
            value_vars=list(self.composites),
            var_name='polarity',
            value_name='score',
        )
        trend = long.groupby([group_col, config.COL_SEQ_INDEX, 'polarity'])['score'].agg(
            mean='mean', sd='std', n='count'
        ).reset_index()
        return trend.rename(columns={group_col: 'group'})
