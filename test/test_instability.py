"""
Tests for the affect instability (MSSD) calculator.
"""

import numpy as np
import pandas as pd
import pytest

import config
from esm.instability import InstabilityCalculator, compute_mssd
from conftest import make_wide

SIMPLE_COMPOSITES = {'positive': ['Happy'], 'negative': ['Sad']}


def _series_wide(scores, moniker='esm001', times=None):
    times = times or [f"1.{i}" for i in range(1, len(scores) + 1)]
    return pd.DataFrame({
        config.COL_MONIKER: moniker,
        config.COL_TIME: times,
        'Happy': scores,
        'Sad': scores,
    })


class TestComputeMssd:
    """MSSD of one ordered series."""

    def test_known_value(self):
        assert compute_mssd(np.array([2.0, 4.0, 2.0]))['mssd'] == pytest.approx(2.0)

    def test_single_valid_point_is_undefined(self):
        result = compute_mssd(np.array([np.nan, 3.0, np.nan]))
        assert np.isnan(result['mssd'])
        assert result['n_valid_points'] == 1

    def test_no_consecutive_pair_is_undefined(self):
        result = compute_mssd(np.array([1.0, np.nan, 5.0]))
        assert np.isnan(result['mssd'])
        assert result['n_valid_pairs'] == 0

    def test_gaps_break_pairs(self):
        result = compute_mssd(np.array([1.0, 3.0, np.nan, 4.0, 8.0]))
        # pairs (1, 3) and (4, 8)
        assert result['n_valid_pairs'] == 2
        assert result['mssd'] == pytest.approx(np.sqrt((4 + 16) / 2))

    def test_constant_series_is_zero(self):
        assert compute_mssd(np.array([3.0, 3.0, 3.0]))['mssd'] == 0.0


class TestComposites:
    """Row composites and sequential index."""

    def test_default_composites_use_configured_items(self, block1_wide):
        scored = InstabilityCalculator(block1_wide).compute_composites()
        expected = block1_wide[config.AFFECT_COMPOSITES['negative']].mean(axis=1)
        merged = block1_wide[[config.COL_MONIKER, config.COL_TIME]].assign(expected=expected)
        merged = merged.merge(scored, on=[config.COL_MONIKER, config.COL_TIME])
        np.testing.assert_allclose(merged['negative'], merged['expected'])

    def test_composite_skips_missing_items(self):
        wide = _series_wide([2.0, 4.0])
        wide['Relaxed'] = [np.nan, 6.0]
        calculator = InstabilityCalculator(wide, composites={'positive': ['Happy', 'Relaxed']})
        scored = calculator.compute_composites()
        assert list(scored['positive']) == [2.0, 5.0]

    def test_composite_missing_when_all_items_missing(self):
        wide = _series_wide([np.nan, 4.0])
        scored = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES).compute_composites()
        assert np.isnan(scored.loc[0, 'positive'])

    def test_seq_index_follows_numeric_time(self):
        wide = _series_wide([5.0, 1.0, 3.0], times=['1.10', '1.2', '1.9'])
        scored = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES).compute_composites()
        assert list(scored[config.COL_TIME]) == ['1.2', '1.9', '1.10']
        assert list(scored[config.COL_SEQ_INDEX]) == [1, 2, 3]
        assert list(scored['positive']) == [1.0, 3.0, 5.0]

    def test_successive_differences(self):
        wide = _series_wide([2.0, 4.0, 2.0])
        diffs = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES).compute_successive_differences()
        assert np.isnan(diffs.loc[0, 'positive_diff'])
        assert list(diffs.loc[1:, 'positive_diff']) == [2.0, -2.0]

    def test_missing_item_column_raises(self):
        with pytest.raises(ValueError, match='Composite items missing'):
            InstabilityCalculator(_series_wide([1.0]), composites={'positive': ['Relaxed']})


class TestMssdRecords:
    """Per-participant MSSD records."""

    def test_known_participant_value(self):
        wide = pd.concat([
            _series_wide([2.0, 4.0, 2.0], moniker='esm001'),
            _series_wide([1.0, np.nan, np.nan], moniker='esm002'),
        ], ignore_index=True)
        mssd = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES).compute_mssd()
        mssd = mssd.set_index([config.COL_MONIKER, 'polarity'])

        assert mssd.loc[('esm001', 'positive'), 'mssd'] == pytest.approx(2.0)
        assert mssd.loc[('esm001', 'negative'), 'mssd'] == pytest.approx(2.0)

    def test_undefined_mssd_is_kept(self):
        wide = pd.concat([
            _series_wide([2.0, 4.0, 2.0], moniker='esm001'),
            _series_wide([1.0, np.nan, np.nan], moniker='esm002'),
        ], ignore_index=True)
        mssd = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES).compute_mssd()

        assert len(mssd) == 4
        undefined = mssd[mssd[config.COL_MONIKER] == 'esm002']
        assert undefined['mssd'].isna().all()
        assert (undefined['n_valid_points'] == 1).all()

    def test_roster_participant_without_rows_is_kept(self, group_covariates):
        wide = _series_wide([2.0, 4.0, 2.0], moniker='esm001')
        mssd = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES).compute_mssd(
            groups=group_covariates, participants=['esm001', 'esm003'],
        )

        assert len(mssd) == 4
        absent = mssd[mssd[config.COL_MONIKER] == 'esm003']
        assert set(absent['polarity']) == {'positive', 'negative'}
        assert absent['mssd'].isna().all()
        assert (absent['n_valid_points'] == 0).all()
        assert (absent['n_valid_pairs'] == 0).all()
        assert (absent[config.GROUP_COLUMN] == 'depression').all()

    def test_order_of_rows_does_not_matter(self):
        wide = _series_wide([2.0, 4.0, 2.0, 8.0])
        shuffled = wide.sample(frac=1.0, random_state=1).reset_index(drop=True)
        calc = InstabilityCalculator(wide, composites=SIMPLE_COMPOSITES)
        calc_shuffled = InstabilityCalculator(shuffled, composites=SIMPLE_COMPOSITES)
        pd.testing.assert_frame_equal(calc.compute_mssd(), calc_shuffled.compute_mssd())

    def test_group_labels_merged(self, group_covariates):
        wide = make_wide(n_participants=8)
        mssd = InstabilityCalculator(wide).compute_mssd(groups=group_covariates)
        assert mssd[config.GROUP_COLUMN].notna().all()
        assert len(mssd) == 16


class TestGroupComparison:
    """MSSD compared between groups, and the composite trend table."""

    def test_compare_groups_per_polarity(self, group_covariates):
        wide = make_wide(n_participants=8, seed=4)
        calculator = InstabilityCalculator(wide)
        results = calculator.compare_groups(calculator.compute_mssd(groups=group_covariates))

        assert set(results) == {'positive', 'negative'}
        for result in results.values():
            assert result['n_groups'] == 4
            assert result['test'] is not None

    def test_compare_without_groups_raises(self, block1_wide):
        calculator = InstabilityCalculator(block1_wide)
        with pytest.raises(ValueError):
            calculator.compare_groups(calculator.compute_mssd())

    def test_composite_trend(self, group_covariates):
        wide = make_wide(n_participants=8, n_days=2, n_timepoints=5)
        trend = InstabilityCalculator(wide).compute_composite_trend(group_covariates)

        # 4 groups x 10 sequence positions x 2 polarities
        assert len(trend) == 80
        assert (trend['n'] == 2).all()
        assert list(trend.columns) == ['group', config.COL_SEQ_INDEX, 'polarity', 'mean', 'sd', 'n']
