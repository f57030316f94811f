# -*- coding: utf-8 -*-
"""
ESM Variable Remapper Module

Maps (block, item code) pairs to canonical variable names and coerces answers
to typed values.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

import pandas as pd

import config

logger = logging.getLogger(__name__)

KeyTable = Dict[Tuple[str, str], str]


class VariableRemapper:
    """
    Replaces item codes with canonical variable names.

    Two lookup tables are combined: one keyed by plain integer item codes and
    one keyed by suffixed codes ("5t", "16e"). The join is a left join on
    (block, item); rows whose key is not in the lookup are dropped.

    Attributes:
        key_table (pd.DataFrame): Columns block, item, variable, key_source
        free_text_variables (set): Variables kept as raw answer text

    Example:
        >>> remapper = VariableRemapper()
        >>> cleaned = remapper.remap(normalized_data)
        >>> remapper.lookup_key('SleepTime')
        ('2', '5t')
    """

    def __init__(self, variable_key: Optional[KeyTable] = None,
                 suffixed_key: Optional[KeyTable] = None,
                 free_text_variables: Optional[Iterable[str]] = None):
        """
        Build the combined lookup table.

        Args:
            variable_key (dict, optional): Plain item codes. Defaults to
                config.VARIABLE_KEY
            suffixed_key (dict, optional): Suffixed item codes. Defaults to
                config.VARIABLE_KEY_SUFFIXED
            free_text_variables (Iterable[str], optional): Defaults to
                config.FREE_TEXT_VARIABLES

        Raises:
            ValueError: If a key appears in both tables or two keys share a
                variable name
        """
        if variable_key is None:
            variable_key = config.VARIABLE_KEY
        if suffixed_key is None:
            suffixed_key = config.VARIABLE_KEY_SUFFIXED
        if free_text_variables is None:
            free_text_variables = config.FREE_TEXT_VARIABLES

        self.key_table = self._build_key_table(variable_key, suffixed_key)
        self.free_text_variables = set(free_text_variables)

    @staticmethod
    def _build_key_table(variable_key: KeyTable, suffixed_key: KeyTable) -> pd.DataFrame:
        overlap = set(variable_key) & set(suffixed_key)
        if overlap:
            raise ValueError(f"Keys present in both lookup tables: {sorted(overlap)}")

        rows = []
        for source, table in (('plain', variable_key), ('suffixed', suffixed_key)):
            for (block, item), variable in table.items():
                rows.append({
                    config.COL_BLOCK: str(block),
                    config.COL_ITEM: str(item),
                    config.COL_VARIABLE: variable,
                    'key_source': source,
                })
        key_table = pd.DataFrame(
            rows, columns=[config.COL_BLOCK, config.COL_ITEM, config.COL_VARIABLE, 'key_source']
        )

        counts = key_table[config.COL_VARIABLE].value_counts()
        shared = sorted(counts[counts > 1].index)
        if shared:
            raise ValueError(f"Variable names mapped from more than one key: {shared}")

        return key_table

    @property
    def variables(self):
        """Variable names in lookup-table order."""
        return list(self.key_table[config.COL_VARIABLE])

    def lookup_key(self, variable: str) -> Tuple[str, str]:
        """
        Return the (block, item) key a variable name was mapped from.

        Raises:
            KeyError: If the variable is not in the lookup table
        """
        match = self.key_table[self.key_table[config.COL_VARIABLE] == variable]
        if match.empty:
            raise KeyError(variable)
        row = match.iloc[0]
        return row[config.COL_BLOCK], row[config.COL_ITEM]

    def remap(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Join variable names onto normalized observations.

        Args:
            data (pd.DataFrame): Output of ESMDataLoader

        Returns:
            pd.DataFrame: Cleaned observations with a variable column (item
                column removed) and a typed value column
        """
        merged = data.merge(
            self.key_table[[config.COL_BLOCK, config.COL_ITEM, config.COL_VARIABLE]],
            on=[config.COL_BLOCK, config.COL_ITEM],
            how='left',
            validate='many_to_one',
        )

        unmatched = merged[config.COL_VARIABLE].isna()
        if unmatched.any():
            unknown = merged.loc[unmatched].groupby(
                [config.COL_BLOCK, config.COL_ITEM]
            ).size()
            logger.info(
                f"Dropped {int(unmatched.sum())} row(s) with {len(unknown)} "
                f"item code(s) unknown to the variable key"
            )
            for (block, item), n in unknown.items():
                logger.debug(f"  block {block}, item {item}: {n} row(s)")
        merged = merged[~unmatched].copy()

        merged[config.COL_VALUE] = self._typed_values(merged)
        merged = merged.drop(columns=[config.COL_ITEM]).reset_index(drop=True)

        logger.info(
            f"Remapped {len(merged)} observations onto "
            f"{merged[config.COL_VARIABLE].nunique()} variables"
        )
        return merged

    def _typed_values(self, merged: pd.DataFrame) -> pd.Series:
        """Numeric values, except free-text variables which keep the raw answer."""
        values = pd.to_numeric(merged[config.COL_ANSWER], errors='coerce').astype(object)
        is_text = merged[config.COL_VARIABLE].isin(self.free_text_variables)
        values[is_text] = merged.loc[is_text, config.COL_ANSWER_RAW]
        return values
