"""
Tests for MissingnessProfiler.
"""

import numpy as np
import pandas as pd
import pytest

import config
from esm.missingness import NO_MISSING_LABEL, MissingnessProfiler
from conftest import make_wide


class TestColumnAndRowMissingness:
    """Per-variable, per-row and per-participant fractions."""

    def test_ten_nulls_in_hundred_rows(self):
        wide = make_wide(n_participants=10, n_days=2, n_timepoints=5,
                         variables=['Happy', 'Sad'])
        assert len(wide) == 100
        wide.loc[wide.index[:10], 'Happy'] = np.nan

        columns = MissingnessProfiler(wide, excluded_variables=[]).column_missingness()
        columns = columns.set_index(config.COL_VARIABLE)
        assert columns.loc['Happy', 'fraction_missing'] == pytest.approx(0.10)
        assert columns.loc['Sad', 'fraction_missing'] == 0.0

    def test_row_missingness(self):
        wide = make_wide(variables=['Happy', 'Sad', 'Relaxed', 'Angry'])
        wide.loc[0, ['Happy', 'Sad']] = np.nan

        rows = MissingnessProfiler(wide, excluded_variables=[]).row_missingness()
        assert rows.loc[0, 'n_missing'] == 2
        assert rows.loc[0, 'fraction_missing'] == pytest.approx(0.5)
        assert (rows.loc[1:, 'n_missing'] == 0).all()

    def test_participant_missingness(self):
        wide = make_wide(n_participants=2, variables=['Happy', 'Sad'])
        wide.loc[wide[config.COL_MONIKER] == 'esm001', 'Happy'] = np.nan

        participants = MissingnessProfiler(
            wide, excluded_variables=[]
        ).participant_missingness().set_index(config.COL_MONIKER)
        assert participants.loc['esm001', 'fraction_missing'] == pytest.approx(0.5)
        assert participants.loc['esm002', 'completion_pct_observed'] == pytest.approx(100.0)

    def test_id_columns_are_not_profiled(self, block1_wide):
        profiler = MissingnessProfiler(block1_wide, excluded_variables=[])
        assert config.COL_TIME not in profiler.variables
        assert profiler.variables == config.get_block1_variables()


class TestExclusion:
    """Unusable variables left out of the summaries."""

    def test_excluded_variables_dropped(self):
        wide = make_wide(variables=['DailyMood', 'SleepTime', 'WakeTime'])
        wide['SleepTime'] = np.nan
        wide['WakeTime'] = np.nan

        included = MissingnessProfiler(wide, excluded_variables=[]).profile()
        excluded = MissingnessProfiler(wide, excluded_variables=config.UNUSABLE_VARIABLES).profile()

        assert included['summary']['fraction_missing'] == pytest.approx(2 / 3)
        assert excluded['summary']['fraction_missing'] == 0.0
        assert excluded['summary']['excluded_variables'] == ['SleepTime', 'WakeTime']

    def test_default_follows_config(self, monkeypatch):
        wide = make_wide(variables=['DailyMood', 'SleepTime'])
        monkeypatch.setattr(config, 'MISSINGNESS_EXCLUDE_UNUSABLE', True)
        assert MissingnessProfiler(wide).variables == ['DailyMood']
        monkeypatch.setattr(config, 'MISSINGNESS_EXCLUDE_UNUSABLE', False)
        assert MissingnessProfiler(wide).variables == ['DailyMood', 'SleepTime']


class TestPatterns:
    """Joint missingness patterns."""

    @pytest.fixture
    def mw_wide(self):
        variables = config.MW_VARIABLES
        wide = make_wide(n_participants=2, n_days=2, n_timepoints=5, variables=variables)
        wide[config.MW_GATE_VARIABLE] = 1.0
        # 6 prompts answered "no": follow-ups absent by design
        no_rows = wide.index[:6]
        wide.loc[no_rows, config.MW_GATE_VARIABLE] = 0.0
        wide.loc[no_rows, config.MW_FOLLOWUP_VARIABLES] = np.nan
        # 2 prompts answered "yes" with one follow-up unanswered
        wide.loc[wide.index[10:12], 'MWcontrol'] = np.nan
        return wide

    def test_patterns_sorted_by_frequency(self, mw_wide):
        patterns = MissingnessProfiler(mw_wide, excluded_variables=[]).missingness_patterns()

        assert list(patterns['n_rows']) == [12, 6, 2]
        assert patterns.loc[0, 'missing_variables'] == NO_MISSING_LABEL
        assert patterns['n_rows'].sum() == len(mw_wide)
        assert patterns['fraction_rows'].sum() == pytest.approx(1.0)

    def test_patterns_grouped_by_gate(self, mw_wide):
        patterns = MissingnessProfiler(
            mw_wide, excluded_variables=[]
        ).missingness_patterns(gate_column=config.MW_GATE_VARIABLE)

        gate_key = f"{config.MW_GATE_VARIABLE}_value"
        assert list(patterns[gate_key]) == [0.0, 1.0, 1.0]
        assert patterns.loc[0, 'missing_variables'] == '+'.join(config.MW_FOLLOWUP_VARIABLES)
        assert patterns.loc[0, 'n_missing_variables'] == 6
        assert list(patterns['n_rows']) == [6, 12, 2]
        assert patterns.loc[2, 'missing_variables'] == 'MWcontrol'
        assert bool(patterns.loc[2, 'MWcontrol'])

    def test_unknown_gate_raises(self, mw_wide):
        with pytest.raises(ValueError, match='Gate column'):
            MissingnessProfiler(mw_wide, excluded_variables=[]).missingness_patterns('Nope')


class TestGroupCompletion:
    """Completion compared between clinical groups."""

    def test_group_completion(self, group_covariates):
        wide = make_wide(n_participants=8, variables=['Happy'])
        result = MissingnessProfiler(wide, excluded_variables=[]).group_completion(group_covariates)

        assert result['n_groups'] == 4
        assert result['n_total'] == 8
        assert result['test'] in ('Kruskal-Wallis', 'ANOVA')
        assert 0.0 <= result['p_value'] <= 1.0
        descriptives = result['descriptives'].set_index('group')
        assert descriptives.loc['control', 'mean'] == pytest.approx((92.0 + 88.5) / 2)
        assert 'completion_pct_observed' in result['data'].columns
