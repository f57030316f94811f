# -*- coding: utf-8 -*-
"""
ESM Data Loader Module

This module loads the raw long-format ESM export (one row per answered screen),
drops structurally invalid rows and normalizes the answer coding.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

import config

logger = logging.getLogger(__name__)


def normalize_answer(answer, prefix_rules: Optional[Sequence[Tuple[str, int]]] = None):
    """
    Collapse anchored answer text to its coded value.

    Likert anchors are exported with their label ("1 = not at all",
    "7 = very much") and binary questions as "no"/"yes" text. The first
    matching prefix wins; the comparison is case sensitive.

    Args:
        answer: Raw answer text (NaN for null)
        prefix_rules: Ordered (prefix, value) pairs. Defaults to
            config.ANSWER_PREFIX_RULES

    Returns:
        The coded value for a matching prefix, the unchanged text otherwise,
        NaN for a null answer

    Example:
        >>> normalize_answer('7 = extremely')
        7
        >>> normalize_answer('no, I was focused')
        0
        >>> normalize_answer('4')
        '4'
    """
    if not isinstance(answer, str):
        return np.nan
    rules = config.ANSWER_PREFIX_RULES if prefix_rules is None else prefix_rules
    for prefix, value in rules:
        if answer.startswith(prefix):
            return value
    return answer


def split_time_key(time_keys: pd.Series) -> pd.DataFrame:
    """
    Split "testing_day.timepoint" keys into numeric parts.

    Args:
        time_keys (pd.Series): Composite time keys

    Returns:
        pd.DataFrame: testing_day and timepoint columns (nullable integers),
            aligned on the input index
    """
    parts = time_keys.astype(str).str.split('.', n=1, expand=True)
    parts = parts.reindex(columns=[0, 1])
    return pd.DataFrame({
        config.COL_TESTING_DAY: pd.to_numeric(parts[0], errors='coerce').astype('Int64'),
        config.COL_TIMEPOINT: pd.to_numeric(parts[1], errors='coerce').astype('Int64'),
    }, index=time_keys.index)


def sort_by_time_key(data: pd.DataFrame, by: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Stable sort on the numeric (testing_day, timepoint) pair of the time key.

    Args:
        data (pd.DataFrame): Frame with a time key column
        by (List[str], optional): Columns to sort on before the time key

    Returns:
        pd.DataFrame: Sorted copy
    """
    parts = split_time_key(data[config.COL_TIME])
    order = pd.concat([data[by or []], parts], axis=1)
    sort_cols = list(by or []) + [config.COL_TESTING_DAY, config.COL_TIMEPOINT]
    index = order.sort_values(sort_cols, kind='mergesort').index
    return data.loc[index]


class ESMDataLoader:
    """
    Loads and normalizes the raw ESM export.

    Cleaning steps, in order:
    - Skip malformed lines (wrong field count)
    - Drop rows without moniker, block, testing day or timepoint
    - Drop rows recorded on testing day "0" (sessions started by mistake)
    - Build the composite time key "testing_day.timepoint"
    - Remove every row of excluded participants
    - Drop rows without item code (instruction screens)
    - Normalize answer text with prefix rules

    Attributes:
        file_path (str): Path to the raw CSV export
        excluded_monikers (set): Participant IDs to remove
        prefix_rules (list): Ordered (prefix, value) normalization rules
        drop_log (Dict[str, int]): Rows removed by each cleaning step

    Example:
        >>> loader = ESMDataLoader('data/esm/esm_raw.csv')
        >>> data = loader.load_data()
        >>> loader.drop_log['excluded_monikers']
        1842
    """

    def __init__(self, file_path: Optional[str] = None,
                 excluded_monikers: Optional[Iterable[str]] = None,
                 prefix_rules: Optional[Sequence[Tuple[str, int]]] = None):
        """
        Initialize the ESM data loader.

        Args:
            file_path (str, optional): Path to the raw CSV export. Only needed
                for load_data(); clean() works on an in-memory frame
            excluded_monikers (Iterable[str], optional): IDs to remove.
                Defaults to config.EXCLUDED_MONIKERS
            prefix_rules (Sequence, optional): Normalization rules. Defaults
                to config.ANSWER_PREFIX_RULES
        """
        self.file_path = file_path
        if excluded_monikers is None:
            excluded_monikers = config.EXCLUDED_MONIKERS
        self.excluded_monikers = set(excluded_monikers)
        self.prefix_rules = list(
            config.ANSWER_PREFIX_RULES if prefix_rules is None else prefix_rules
        )
        self.required_columns = config.RAW_COLUMNS
        self.drop_log: Dict[str, int] = {}
        self._bad_lines: List[List[str]] = []

    def _on_bad_line(self, fields: List[str]):
        self._bad_lines.append(fields)
        return None

    def read_raw(self) -> pd.DataFrame:
        """
        Read the raw export with every field as text.

        Returns:
            pd.DataFrame: Raw rows in file order

        Raises:
            FileNotFoundError: If the export does not exist
            ValueError: If required columns are missing
            pandas.errors.ParserError: If the file cannot be parsed at all
        """
        if not self.file_path:
            raise ValueError("No file_path given to ESMDataLoader")

        logger.info(f"Loading ESM data from CSV: {self.file_path}")
        self._bad_lines = []
        try:
            raw = pd.read_csv(
                self.file_path,
                dtype=str,
                keep_default_na=False,
                na_values=[config.NULL_SENTINEL],
                engine='python',
                on_bad_lines=self._on_bad_line,
            )
        except FileNotFoundError:
            error_msg = (
                f"ESM data file not found: {self.file_path}. "
                f"Please ensure the file exists at the specified path."
            )
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)
        except pd.errors.ParserError as e:
            error_msg = (
                f"Failed to parse ESM data file: {self.file_path}. "
                f"Parser error: {str(e)}"
            )
            logger.error(error_msg)
            raise pd.errors.ParserError(error_msg)

        self.drop_log['malformed_lines'] = len(self._bad_lines)
        if self._bad_lines:
            logger.warning(f"Skipped {len(self._bad_lines)} malformed line(s)")

        return raw

    def _check_columns(self, raw: pd.DataFrame) -> None:
        missing_columns = set(self.required_columns) - set(raw.columns)
        if missing_columns:
            error_msg = (
                f"Missing required columns in ESM data: {', '.join(sorted(missing_columns))}. "
                f"Expected columns: {', '.join(self.required_columns)}"
            )
            logger.error(error_msg)
            raise ValueError(error_msg)

    def _drop(self, data: pd.DataFrame, keep: pd.Series, step: str) -> pd.DataFrame:
        n_removed = int((~keep).sum())
        self.drop_log[step] = self.drop_log.get(step, 0) + n_removed
        logger.info(f"{step}: removed {n_removed} row(s), {int(keep.sum())} remaining")
        return data[keep].copy()

    def drop_incomplete_rows(self, data: pd.DataFrame) -> pd.DataFrame:
        """Drop rows lacking any of the key fields (moniker, block, day, timepoint)."""
        key_cols = [config.COL_MONIKER, config.COL_BLOCK,
                    config.COL_TESTING_DAY, config.COL_TIMEPOINT]
        keep = data[key_cols].notna().all(axis=1)
        return self._drop(data, keep, 'incomplete_rows')

    def drop_invalid_testing_days(self, data: pd.DataFrame) -> pd.DataFrame:
        """Drop rows recorded on the sentinel testing day."""
        keep = data[config.COL_TESTING_DAY] != config.INVALID_TESTING_DAY
        return self._drop(data, keep, 'invalid_testing_day')

    def add_time_key(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Add the composite time key.

        The key stays a string so "1.10" and "1.1" remain distinct; numeric
        ordering uses testing_day and timepoint separately.
        """
        data = data.copy()
        data[config.COL_TIME] = (
            data[config.COL_TESTING_DAY] + '.' + data[config.COL_TIMEPOINT]
        )
        return data

    def exclude_participants(self, data: pd.DataFrame) -> pd.DataFrame:
        """Remove all rows of every excluded moniker."""
        keep = ~data[config.COL_MONIKER].isin(self.excluded_monikers)
        found = set(data.loc[~keep, config.COL_MONIKER].unique())
        if found:
            logger.debug(f"Excluded monikers present in data: {sorted(found)}")
        return self._drop(data, keep, 'excluded_monikers')

    def drop_instruction_rows(self, data: pd.DataFrame) -> pd.DataFrame:
        """Drop rows without item code. These are instruction screens, not answers."""
        keep = data[config.COL_ITEM].notna()
        return self._drop(data, keep, 'instruction_rows')

    def normalize_answers(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Build the normalized answer column.

        The raw text is kept in answer_raw; answer holds the coded value.
        """
        data = data.copy()
        data[config.COL_ANSWER_RAW] = data[config.COL_ANSWER]
        data[config.COL_ANSWER] = data[config.COL_ANSWER_RAW].map(
            lambda a: normalize_answer(a, self.prefix_rules)
        ).astype(object)
        return data

    def clean(self, raw: pd.DataFrame) -> pd.DataFrame:
        """
        Apply all cleaning steps to a raw frame.

        Args:
            raw (pd.DataFrame): Raw rows, all fields as strings (NaN for null)

        Returns:
            pd.DataFrame: Normalized observations with time key and native
                order column
        """
        self._check_columns(raw)
        self.drop_log = {'malformed_lines': self.drop_log.get('malformed_lines', 0)}
        data = raw.copy()
        if config.COL_ORDER not in data.columns:
            data[config.COL_ORDER] = np.arange(len(data))

        n_start = len(data)
        data = self.drop_incomplete_rows(data)
        data = self.drop_invalid_testing_days(data)
        data = self.add_time_key(data)
        data = self.exclude_participants(data)
        data = self.drop_instruction_rows(data)
        data = self.normalize_answers(data)
        data = data.reset_index(drop=True)

        logger.info(
            f"Cleaned ESM data: {n_start} -> {len(data)} rows, "
            f"{data[config.COL_MONIKER].nunique()} participants"
        )
        return data

    def load_data(self) -> pd.DataFrame:
        """
        Read the raw export and apply all cleaning steps.

        Returns:
            pd.DataFrame: Normalized observations

        Example:
            >>> data = ESMDataLoader('data/esm/esm_raw.csv').load_data()
        """
        self.drop_log = {}
        raw = self.read_raw()
        return self.clean(raw)


def load_group_covariates(file_path: str) -> pd.DataFrame:
    """
    Load the participant group covariate file.

    Args:
        file_path (str): CSV keyed by moniker with a group label and a
            completion percentage

    Returns:
        pd.DataFrame: One row per moniker with moniker, group and
            completion columns

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required columns are missing or monikers repeat
    """
    logger.info(f"Loading group covariates from: {file_path}")
    try:
        groups = pd.read_csv(file_path, dtype={config.COL_MONIKER: str})
    except FileNotFoundError:
        error_msg = f"Group covariate file not found: {file_path}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    required = [config.COL_MONIKER, config.GROUP_COLUMN, config.COMPLETION_COLUMN]
    missing_columns = set(required) - set(groups.columns)
    if missing_columns:
        error_msg = (
            f"Missing required columns in group covariates: "
            f"{', '.join(sorted(missing_columns))}"
        )
        logger.error(error_msg)
        raise ValueError(error_msg)

    repeated = groups[config.COL_MONIKER].duplicated(keep=False)
    if repeated.any():
        error_msg = (
            f"Monikers listed more than once in group covariates: "
            f"{sorted(groups.loc[repeated, config.COL_MONIKER].unique())}"
        )
        logger.error(error_msg)
        raise ValueError(error_msg)

    groups[config.COMPLETION_COLUMN] = pd.to_numeric(
        groups[config.COMPLETION_COLUMN], errors='coerce'
    )

    unknown = set(groups[config.GROUP_COLUMN].dropna()) - set(config.GROUP_LEVELS)
    if unknown:
        logger.warning(f"Unexpected group labels: {sorted(unknown)}")

    logger.info(
        f"Loaded {len(groups)} participants in "
        f"{groups[config.GROUP_COLUMN].nunique()} groups"
    )
    return groups


def read_exclusion_list(file_path: str) -> List[str]:
    """
    Read participant IDs to exclude, one per line.

    Blank lines and lines starting with '#' are ignored.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    if not os.path.exists(file_path):
        error_msg = f"Exclusion file not found: {file_path}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    with open(file_path, 'r', encoding='utf-8') as f:
        monikers = [line.strip() for line in f]
    monikers = [m for m in monikers if m and not m.startswith('#')]

    logger.info(f"Read {len(monikers)} excluded moniker(s) from {file_path}")
    return monikers
