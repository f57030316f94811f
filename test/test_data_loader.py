"""
Tests for the ESM loader: answer normalization, row cleaning, time keys and
the auxiliary input files.
"""

import numpy as np
import pandas as pd
import pytest

import config
from esm.data_loader import (
    ESMDataLoader,
    load_group_covariates,
    normalize_answer,
    read_exclusion_list,
    sort_by_time_key,
    split_time_key,
)


class TestNormalizeAnswer:
    """Prefix-based answer coding."""

    def test_likert_anchors(self):
        assert normalize_answer('1 = not at all') == 1
        assert normalize_answer('7 = very much') == 7

    def test_binary_answers(self):
        assert normalize_answer('no, I was on task') == 0
        assert normalize_answer('yes, my mind wandered') == 1

    def test_unmatched_text_is_unchanged(self):
        assert normalize_answer('4') == '4'
        assert normalize_answer('went for a walk') == 'went for a walk'

    def test_null_stays_null(self):
        assert np.isnan(normalize_answer(np.nan))
        assert np.isnan(normalize_answer(None))

    def test_first_matching_rule_wins(self):
        rules = [('ye', 5), ('yes', 1)]
        assert normalize_answer('yes', rules) == 5

    def test_matching_is_case_sensitive(self):
        assert normalize_answer('Yes') == 'Yes'


class TestTimeKeys:
    """Composite "testing_day.timepoint" keys."""

    def test_split_time_key(self):
        parts = split_time_key(pd.Series(['1.2', '14.10']))
        assert list(parts[config.COL_TESTING_DAY]) == [1, 14]
        assert list(parts[config.COL_TIMEPOINT]) == [2, 10]

    def test_numeric_ordering_not_string_ordering(self):
        data = pd.DataFrame({config.COL_TIME: ['1.10', '2.1', '1.9', '10.1', '1.1']})
        ordered = sort_by_time_key(data)
        assert list(ordered[config.COL_TIME]) == ['1.1', '1.9', '1.10', '2.1', '10.1']

    def test_sort_is_stable_for_equal_keys(self):
        data = pd.DataFrame({
            config.COL_MONIKER: ['a', 'a', 'a'],
            config.COL_TIME: ['1.2', '1.1', '1.2'],
            'tag': ['first', 'only', 'second'],
        })
        ordered = sort_by_time_key(data, by=[config.COL_MONIKER])
        assert list(ordered['tag']) == ['only', 'first', 'second']


class TestClean:
    """Cleaning steps applied to an in-memory raw frame."""

    def test_no_null_item_and_no_sentinel_day(self, raw_export):
        data = ESMDataLoader().clean(raw_export)
        assert data[config.COL_ITEM].notna().all()
        assert (data[config.COL_TESTING_DAY] != config.INVALID_TESTING_DAY).all()

    def test_exclusion_is_total(self, raw_export):
        data = ESMDataLoader().clean(raw_export)
        assert not data[config.COL_MONIKER].isin(config.EXCLUDED_MONIKERS).any()
        assert set(data[config.COL_MONIKER]) == {'esm001', 'esm002'}

    def test_custom_exclusion_list_replaces_default(self, raw_export):
        data = ESMDataLoader(excluded_monikers=['esm002']).clean(raw_export)
        assert 'esm002' not in set(data[config.COL_MONIKER])
        assert 'test' in set(data[config.COL_MONIKER])

    def test_drop_log_counts(self, raw_export):
        loader = ESMDataLoader()
        loader.clean(raw_export)
        assert loader.drop_log['incomplete_rows'] == 2
        assert loader.drop_log['invalid_testing_day'] == 2
        assert loader.drop_log['excluded_monikers'] == 3
        assert loader.drop_log['instruction_rows'] == 20

    def test_repeated_clean_does_not_accumulate(self, raw_export):
        loader = ESMDataLoader()
        loader.clean(raw_export)
        loader.clean(raw_export)
        assert loader.drop_log['excluded_monikers'] == 3

    def test_time_key_and_order(self, raw_export):
        data = ESMDataLoader().clean(raw_export)
        expected = data[config.COL_TESTING_DAY] + '.' + data[config.COL_TIMEPOINT]
        assert (data[config.COL_TIME] == expected).all()
        assert data[config.COL_ORDER].is_monotonic_increasing

    def test_answers_normalized_and_raw_kept(self, raw_export):
        data = ESMDataLoader().clean(raw_export)
        gate = data[(data[config.COL_BLOCK] == '1') & (data[config.COL_ITEM] == '9')]
        assert set(gate[config.COL_ANSWER]) == {0, 1}
        assert gate[config.COL_ANSWER_RAW].str.startswith(('yes', 'no')).all()

    def test_empty_prefix_rules_leave_answers_as_text(self, raw_export):
        data = ESMDataLoader(prefix_rules=[]).clean(raw_export)
        gate = data[(data[config.COL_BLOCK] == '1') & (data[config.COL_ITEM] == '9')]
        assert (gate[config.COL_ANSWER] == gate[config.COL_ANSWER_RAW]).all()

    def test_missing_column_raises(self, raw_export):
        with pytest.raises(ValueError, match='Missing required columns'):
            ESMDataLoader().clean(raw_export.drop(columns=[config.COL_ITEM]))


class TestLoadData:
    """Reading the raw CSV export."""

    def test_load_from_csv(self, raw_export, tmp_path):
        path = tmp_path / 'esm_raw.csv'
        raw_export.to_csv(path, index=False)

        loader = ESMDataLoader(str(path))
        data = loader.load_data()

        assert loader.drop_log['malformed_lines'] == 0
        assert set(data[config.COL_MONIKER]) == {'esm001', 'esm002'}
        # empty answers are read as null, not as ''
        assert data[config.COL_ANSWER_RAW].isna().any()
        assert (data[config.COL_ANSWER_RAW] != '').all()

    def test_malformed_lines_are_skipped(self, tmp_path):
        path = tmp_path / 'esm_raw.csv'
        path.write_text(
            'moniker,block,item,answer,timepoint,testing_day\n'
            'esm001,1,1,4,1,1\n'
            'esm001,1,2,5,1,1,unexpected,extra\n'
            'esm001,1,3,6,1,1\n'
        )
        loader = ESMDataLoader(str(path))
        data = loader.load_data()

        assert loader.drop_log['malformed_lines'] == 1
        assert list(data[config.COL_ITEM]) == ['1', '3']

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match='ESM data file not found'):
            ESMDataLoader(str(tmp_path / 'absent.csv')).load_data()


class TestAuxiliaryFiles:
    """Exclusion list and group covariate files."""

    def test_read_exclusion_list(self, tmp_path):
        path = tmp_path / 'excluded.txt'
        path.write_text('# pilots\nesm010\n\n  esm011  \n')
        assert read_exclusion_list(str(path)) == ['esm010', 'esm011']

    def test_read_exclusion_list_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_exclusion_list(str(tmp_path / 'absent.txt'))

    def test_load_group_covariates(self, group_covariates, tmp_path):
        path = tmp_path / 'groups.csv'
        group_covariates.to_csv(path, index=False)
        groups = load_group_covariates(str(path))
        assert len(groups) == 8
        assert groups[config.COMPLETION_COLUMN].dtype == float

    def test_duplicate_moniker_raises(self, group_covariates, tmp_path):
        path = tmp_path / 'groups.csv'
        pd.concat([group_covariates, group_covariates.head(1)]).to_csv(path, index=False)
        with pytest.raises(ValueError, match='more than once'):
            load_group_covariates(str(path))

    def test_missing_group_column_raises(self, group_covariates, tmp_path):
        path = tmp_path / 'groups.csv'
        group_covariates.drop(columns=[config.GROUP_COLUMN]).to_csv(path, index=False)
        with pytest.raises(ValueError, match='Missing required columns'):
            load_group_covariates(str(path))
