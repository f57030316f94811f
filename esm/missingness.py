# -*- coding: utf-8 -*-
"""
ESM Missingness Profiler Module

This module quantifies missing cells in a wide ESM table: per variable, per
row, per participant, and as joint missingness patterns. Patterns can be
grouped by a branch gate column so that follow-ups absent by design are kept
apart from true missing answers. It also compares survey completion between
clinical groups.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

import config
from esm.group_comparison import compare_groups
from esm.reshaper import ID_COLUMNS

logger = logging.getLogger(__name__)

NO_MISSING_LABEL = '(none)'


class MissingnessProfiler:
    """
    Computes missingness statistics of one wide table.

    Attributes:
        wide (pd.DataFrame): Wide table from pivot_to_wide()
        variables (List[str]): Variable columns included in the summaries
        excluded_variables (List[str]): Variable columns left out

    Example:
        >>> profiler = MissingnessProfiler(block1_wide)
        >>> profiler.column_missingness().head()
        >>> patterns = profiler.missingness_patterns(gate_column='MWoccur')
    """

    def __init__(self, wide: pd.DataFrame, variables: Optional[Iterable[str]] = None,
                 excluded_variables: Optional[Iterable[str]] = None):
        """
        Initialize the profiler.

        Args:
            wide (pd.DataFrame): One row per (moniker, time)
            variables (Iterable[str], optional): Columns to profile. Defaults
                to every non-ID column
            excluded_variables (Iterable[str], optional): Columns to leave out
                of the summaries. Defaults to
                config.get_missingness_excluded_variables()
        """
        self.wide = wide.copy()
        if variables is None:
            variables = [c for c in wide.columns if c not in ID_COLUMNS]
        variables = list(variables)
        if excluded_variables is None:
            excluded_variables = config.get_missingness_excluded_variables()

        self.excluded_variables = [v for v in excluded_variables if v in variables]
        self.variables = [v for v in variables if v not in set(self.excluded_variables)]

        if self.excluded_variables:
            logger.info(f"Missingness summaries exclude: {self.excluded_variables}")

    def _mask(self) -> pd.DataFrame:
        return self.wide[self.variables].isna()

    def column_missingness(self) -> pd.DataFrame:
        """
        Fraction of missing cells per variable.

        Returns:
            pd.DataFrame: Columns variable, n_missing, n_total, fraction_missing
        """
        mask = self._mask()
        result = pd.DataFrame({
            config.COL_VARIABLE: self.variables,
            'n_missing': mask.sum().to_numpy(dtype=int),
        })
        result['n_total'] = len(mask)
        result['fraction_missing'] = (
            result['n_missing'] / result['n_total'] if len(mask) else float('nan')
        )
        return result

    def row_missingness(self) -> pd.DataFrame:
        """
        Fraction of missing cells per (moniker, time) row.

        Returns:
            pd.DataFrame: Columns moniker, time, n_missing, fraction_missing
        """
        mask = self._mask()
        result = self.wide[[config.COL_MONIKER, config.COL_TIME]].copy()
        result['n_missing'] = mask.sum(axis=1).astype(int)
        result['fraction_missing'] = (
            result['n_missing'] / len(self.variables) if self.variables else float('nan')
        )
        return result.reset_index(drop=True)

    def participant_missingness(self) -> pd.DataFrame:
        """
        Missingness aggregated per participant.

        Returns:
            pd.DataFrame: Columns moniker, n_rows, n_cells, n_missing,
                fraction_missing, completion_pct_observed
        """
        rows = self.row_missingness()
        result = rows.groupby(config.COL_MONIKER).agg(
            n_rows=(config.COL_TIME, 'count'),
            n_missing=('n_missing', 'sum'),
        ).reset_index()
        result['n_cells'] = result['n_rows'] * len(self.variables)
        result['fraction_missing'] = result['n_missing'] / result['n_cells']
        result['completion_pct_observed'] = 100.0 * (1.0 - result['fraction_missing'])
        return result[[config.COL_MONIKER, 'n_rows', 'n_cells', 'n_missing',
                       'fraction_missing', 'completion_pct_observed']]

    def missingness_patterns(self, gate_column: Optional[str] = None) -> pd.DataFrame:
        """
        Enumerate distinct sets of jointly missing variables.

        Args:
            gate_column (str, optional): Branch gate column (e.g. MWoccur).
                When given, patterns are counted separately for each gate
                value and sorted by gate value first, so follow-ups absent
                after a "no" are listed apart from true missingness

        Returns:
            pd.DataFrame: One row per pattern with the gate value (optional),
                missing_variables (joined with "+"), n_missing_variables,
                n_rows, fraction_rows and one boolean column per variable,
                sorted by frequency descending
        """
        mask = self._mask()
        frame = mask.copy()
        frame['missing_variables'] = mask.apply(
            lambda row: '+'.join(row.index[row.to_numpy(dtype=bool)]) or NO_MISSING_LABEL,
            axis=1,
        ) if len(mask) else pd.Series(dtype=object)

        keys: List[str] = ['missing_variables']
        gate_key = None
        if gate_column is not None:
            if gate_column not in self.wide.columns:
                raise ValueError(f"Gate column not in wide table: {gate_column}")
            gate_key = f"{gate_column}_value"
            frame[gate_key] = self.wide[gate_column]
            keys = [gate_key] + keys

        counts = frame.groupby(keys, dropna=False).size().reset_index(name='n_rows')
        indicators = frame.drop_duplicates(subset=keys)[keys + self.variables]
        patterns = counts.merge(indicators, on=keys, how='left')
        patterns['n_missing_variables'] = patterns[self.variables].sum(axis=1).astype(int)
        patterns['fraction_rows'] = patterns['n_rows'] / max(len(mask), 1)

        if gate_key is not None:
            patterns = patterns.sort_values(
                [gate_key, 'n_rows'], ascending=[True, False],
                na_position='last', kind='mergesort',
            )
        else:
            patterns = patterns.sort_values('n_rows', ascending=False, kind='mergesort')

        ordered = keys + ['n_missing_variables', 'n_rows', 'fraction_rows'] + self.variables
        return patterns[ordered].reset_index(drop=True)

    def group_completion(self, groups: pd.DataFrame,
                         completion_col: Optional[str] = None,
                         group_col: Optional[str] = None) -> Dict[str, Any]:
        """
        Completion by clinical group with a skew-aware group test.

        The participant population is taken from the covariate file; the
        observed completion from this table is joined for reference.

        Args:
            groups (pd.DataFrame): Covariate table keyed by moniker
            completion_col (str, optional): Metric to compare. Defaults to
                config.COMPLETION_COLUMN when present in groups, otherwise
                the completion observed in this table
            group_col (str, optional): Defaults to config.GROUP_COLUMN

        Returns:
            Dictionary with the merged table ('data') and compare_groups() output
        """
        group_col = config.GROUP_COLUMN if group_col is None else group_col
        if completion_col is None:
            completion_col = (config.COMPLETION_COLUMN
                              if config.COMPLETION_COLUMN in groups.columns
                              else 'completion_pct_observed')

        observed = self.participant_missingness()[[config.COL_MONIKER, 'completion_pct_observed']]
        merged = groups.merge(observed, on=config.COL_MONIKER, how='left')

        result = compare_groups(merged, completion_col, group_col)
        result['data'] = merged
        return result

    def profile(self, gate_column: Optional[str] = None) -> Dict[str, Any]:
        """
        Run every missingness summary.

        Args:
            gate_column (str, optional): Passed to missingness_patterns()

        Returns:
            Dictionary with columns, rows, participants and patterns
            DataFrames plus overall counts
        """
        columns = self.column_missingness()
        rows = self.row_missingness()
        participants = self.participant_missingness()
        patterns = self.missingness_patterns(gate_column)

        n_cells = len(self.wide) * len(self.variables)
        n_missing = int(columns['n_missing'].sum())
        summary = {
            'n_rows': len(self.wide),
            'n_variables': len(self.variables),
            'n_cells': n_cells,
            'n_missing': n_missing,
            'fraction_missing': n_missing / n_cells if n_cells else float('nan'),
            'n_patterns': len(patterns),
            'excluded_variables': list(self.excluded_variables),
        }
        logger.info(
            f"Missingness: {summary['fraction_missing']:.1%} of {n_cells} cells, "
            f"{summary['n_patterns']} pattern(s)"
        )

        return {
            'summary': summary,
            'columns': columns,
            'rows': rows,
            'participants': participants,
            'patterns': patterns,
        }
