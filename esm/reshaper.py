# -*- coding: utf-8 -*-
"""
ESM Wide Reshaper Module

Pivots long-format observations to one row per (participant, time) and one
column per variable. A duplicated (participant, time, variable) key means an
upstream filter misbehaved, so the reshape refuses to pick a value.
"""

import logging
import os
from typing import Iterable, List, Optional

import pandas as pd

import config
from esm.data_loader import sort_by_time_key, split_time_key

logger = logging.getLogger(__name__)

ID_COLUMNS = [config.COL_MONIKER, config.COL_TIME, config.COL_TESTING_DAY, config.COL_TIMEPOINT]


class DuplicateKeyError(ValueError):
    """Raised when a (participant, time, variable) key occurs more than once."""

    def __init__(self, duplicates: pd.DataFrame):
        self.duplicates = duplicates
        first = duplicates.iloc[0]
        message = (
            f"{len(duplicates)} duplicated (moniker, time, variable) key(s); first: "
            f"({first[config.COL_MONIKER]}, {first[config.COL_TIME]}, "
            f"{first[config.COL_VARIABLE]}) x {first['count']}"
        )
        super().__init__(message)


def find_duplicate_keys(data: pd.DataFrame) -> pd.DataFrame:
    """
    List (participant, time, variable) keys with more than one row.

    Returns:
        pd.DataFrame: Columns moniker, time, variable, count
    """
    keys = [config.COL_MONIKER, config.COL_TIME, config.COL_VARIABLE]
    counts = data.groupby(keys).size().reset_index(name='count')
    return counts[counts['count'] > 1].reset_index(drop=True)


def pivot_to_wide(data: pd.DataFrame, variables: Optional[Iterable[str]] = None,
                  free_text_variables: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Reshape long observations to wide form.

    Args:
        data (pd.DataFrame): Long observations of one block
        variables (Iterable[str], optional): Column order for the variables.
            Variables not observed are added as empty columns. Defaults to
            the observed variables in order of first appearance
        free_text_variables (Iterable[str], optional): Columns left as text.
            Defaults to config.FREE_TEXT_VARIABLES

    Returns:
        pd.DataFrame: One row per (moniker, time), sorted by moniker and
            chronological time, with columns moniker, time, testing_day,
            timepoint followed by one column per variable

    Raises:
        DuplicateKeyError: If a (moniker, time, variable) key is not unique
    """
    if free_text_variables is None:
        free_text_variables = config.FREE_TEXT_VARIABLES

    duplicates = find_duplicate_keys(data)
    if not duplicates.empty:
        logger.error(f"Cannot reshape: {len(duplicates)} duplicated key(s)")
        raise DuplicateKeyError(duplicates)

    if variables is None:
        variables = list(dict.fromkeys(data[config.COL_VARIABLE]))
    variables = list(variables)

    wide = data.pivot(
        index=[config.COL_MONIKER, config.COL_TIME],
        columns=config.COL_VARIABLE,
        values=config.COL_VALUE,
    )
    wide = wide.reindex(columns=variables)
    wide.columns.name = None
    wide = wide.reset_index()

    parts = split_time_key(wide[config.COL_TIME])
    wide.insert(2, config.COL_TESTING_DAY, parts[config.COL_TESTING_DAY])
    wide.insert(3, config.COL_TIMEPOINT, parts[config.COL_TIMEPOINT])

    text_columns = set(free_text_variables)
    for column in variables:
        if column not in text_columns:
            wide[column] = pd.to_numeric(wide[column], errors='coerce')

    wide = sort_by_time_key(wide, by=[config.COL_MONIKER]).reset_index(drop=True)

    logger.info(
        f"Reshaped {len(data)} observations to wide: {len(wide)} rows x "
        f"{len(variables)} variables"
    )
    return wide


def melt_to_long(wide: pd.DataFrame, variables: Optional[List[str]] = None,
                 dropna: bool = True) -> pd.DataFrame:
    """
    Inverse of pivot_to_wide.

    Args:
        wide (pd.DataFrame): Output of pivot_to_wide
        variables (List[str], optional): Variable columns to melt. Defaults
            to every non-ID column
        dropna (bool): Drop empty cells (cells that had no observation)

    Returns:
        pd.DataFrame: Columns moniker, time, variable, value
    """
    if variables is None:
        variables = [c for c in wide.columns if c not in ID_COLUMNS]
    long = wide.melt(
        id_vars=[config.COL_MONIKER, config.COL_TIME],
        value_vars=variables,
        var_name=config.COL_VARIABLE,
        value_name=config.COL_VALUE,
    )
    if dropna:
        long = long.dropna(subset=[config.COL_VALUE])
    return long.reset_index(drop=True)


def load_wide_table(file_path: str) -> pd.DataFrame:
    """
    Read a wide table exported by the preprocessing script.

    Participant IDs and time keys are read as text so that "1.10" is not
    turned into 1.1.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    if not os.path.exists(file_path):
        error_msg = f"Wide table not found: {file_path}. Run scripts/preprocess_esm_data.py first."
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    wide = pd.read_csv(file_path, dtype={config.COL_MONIKER: str, config.COL_TIME: str})
    logger.info(f"Loaded wide table: {len(wide)} rows from {file_path}")
    return wide
