# -*- coding: utf-8 -*-
"""
ESM Branching-Logic Filter

Mind-wandering follow-up questions are only shown when the occurrence
question was answered "yes". When it was answered "no" the follow-up rows are
exported with empty answers. Those rows are missing by design and are removed
here so they never count as missing data.
"""

import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

import config

logger = logging.getLogger(__name__)


def find_branch_skips(data: pd.DataFrame, gate_variable: str) -> pd.Series:
    """
    Flag rows that follow a skipped branch within their (participant, time) group.

    The frame must already be sorted by participant, time and native order.
    A branch skip starts at the first gate row answered 0 whose next row in
    the group has a null value. That gate row is kept; every later row of the
    group is flagged.

    Args:
        data (pd.DataFrame): Sorted mind-wandering rows
        gate_variable (str): Name of the occurrence question

    Returns:
        pd.Series: Boolean mask aligned on data, True for rows to drop
    """
    group_keys = [data[config.COL_MONIKER], data[config.COL_TIME]]

    values = pd.to_numeric(data[config.COL_VALUE], errors='coerce')
    gate_zero = (data[config.COL_VARIABLE] == gate_variable) & (values == 0)
    next_is_null = data[config.COL_VALUE].isna().groupby(group_keys).shift(-1, fill_value=False)

    trigger = (gate_zero & next_is_null).astype(int)
    triggers_before = trigger.groupby(group_keys).cumsum() - trigger
    return triggers_before > 0


def filter_branching_logic(data: pd.DataFrame,
                           gate_variable: Optional[str] = None,
                           mw_variables: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Remove mind-wandering follow-ups that were skipped by design.

    Works per (participant, time) group after a stable sort on the native row
    order. Groups without the "gate answered 0, next answer null" pattern are
    kept whole, so the function never raises on unexpected sequences. Rows
    outside the mind-wandering set pass through untouched.

    Args:
        data (pd.DataFrame): Block 1 cleaned observations
        gate_variable (str, optional): Defaults to config.MW_GATE_VARIABLE
        mw_variables (Iterable[str], optional): Defaults to config.MW_VARIABLES

    Returns:
        pd.DataFrame: New frame without the branch-skipped rows, in the
            original row order

    Example:
        >>> block1 = filter_branching_logic(blocks['block1'])
    """
    gate_variable = config.MW_GATE_VARIABLE if gate_variable is None else gate_variable
    mw_variables = list(config.MW_VARIABLES if mw_variables is None else mw_variables)

    data = data.copy()
    if config.COL_ORDER not in data.columns:
        data[config.COL_ORDER] = np.arange(len(data))

    is_mw = data[config.COL_VARIABLE].isin(mw_variables)
    mw_rows = data[is_mw].sort_values(
        [config.COL_MONIKER, config.COL_TIME, config.COL_ORDER], kind='mergesort'
    )

    drop_mask = find_branch_skips(mw_rows, gate_variable)
    kept_mw = mw_rows[~drop_mask]

    n_groups = mw_rows.loc[drop_mask, [config.COL_MONIKER, config.COL_TIME]].drop_duplicates().shape[0]
    logger.info(
        f"Branching filter: removed {int(drop_mask.sum())} skipped follow-up row(s) "
        f"in {n_groups} prompt(s) where {gate_variable} = 0"
    )

    filtered = pd.concat([data[~is_mw], kept_mw]).sort_index()
    return filtered.reset_index(drop=True)
