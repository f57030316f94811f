"""
Shared fixtures: synthetic ESM exports, wide tables and group covariates.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import config

EMOTION_ITEMS = [str(i) for i in range(1, 9)]
MW_GATE_ITEM = '9'
MW_FOLLOWUP_ITEMS = [str(i) for i in range(10, 16)]
CONTEXT_ITEMS = ['16', '17']
BLOCK2_ITEMS = [str(i) for i in range(1, 11)] + [
    '5t', '6t', '12e', '13e', '14e', '15e', '16e', '17x',
]
BLOCK2_TEXT_ANSWERS = {'5t': '23:30', '6t': '07:15', '17x': 'went for a walk'}

MONIKERS = ['esm001', 'esm002', 'esm003', 'esm004', 'esm005', 'esm006', 'esm007', 'esm008']
GROUPS = ['control', 'control', 'depression', 'depression',
          'anxiety', 'anxiety', 'comorbid', 'comorbid']


def _likert(value):
    if value == 1:
        return '1 = not at all'
    if value == 7:
        return '7 = very much'
    return str(value)


def _row(moniker, block, item, answer, timepoint, day):
    return {
        config.COL_MONIKER: moniker,
        config.COL_BLOCK: block,
        config.COL_ITEM: item,
        config.COL_ANSWER: answer,
        config.COL_TIMEPOINT: timepoint,
        config.COL_TESTING_DAY: day,
    }


def build_raw_export(monikers, n_days=2, n_timepoints=5, seed=0):
    """
    Raw export in file order, every field as text and NaN for empty fields.

    Each prompt has an instruction screen, 8 emotions, the mind-wandering
    gate and its 6 follow-ups (empty after a "no"), and 2 context items.
    Mind wandering is answered "no" when day + timepoint is odd. Each day
    has one Block 2 survey recorded at timepoint 1.
    """
    rng = np.random.default_rng(seed)
    rows = []
    for moniker in monikers:
        for day in range(1, n_days + 1):
            for tp in range(1, n_timepoints + 1):
                d, t = str(day), str(tp)
                rows.append(_row(moniker, '1', np.nan, 'Please answer the next questions', t, d))
                for item in EMOTION_ITEMS:
                    rows.append(_row(moniker, '1', item, _likert(int(rng.integers(1, 8))), t, d))
                mw_yes = (day + tp) % 2 == 0
                gate = 'yes, my mind wandered' if mw_yes else 'no, I was on task'
                rows.append(_row(moniker, '1', MW_GATE_ITEM, gate, t, d))
                for item in MW_FOLLOWUP_ITEMS:
                    answer = _likert(int(rng.integers(1, 8))) if mw_yes else np.nan
                    rows.append(_row(moniker, '1', item, answer, t, d))
                for item in CONTEXT_ITEMS:
                    rows.append(_row(moniker, '1', item, str(int(rng.integers(2, 5))), t, d))
            for item in BLOCK2_ITEMS:
                answer = BLOCK2_TEXT_ANSWERS.get(item) or _likert(int(rng.integers(1, 8)))
                rows.append(_row(moniker, '2', item, answer, '1', str(day)))
    return pd.DataFrame(rows, columns=config.RAW_COLUMNS)


def add_noise_rows(raw):
    """Append rows every cleaning step must remove."""
    noise = pd.DataFrame([
        _row('esm001', '1', '1', '4', '1', '0'),
        _row('esm001', '1', '2', '5', '2', '0'),
        _row(np.nan, '1', '1', '4', '1', '1'),
        _row('esm002', '1', '1', '4', np.nan, '1'),
        _row('test', '1', '1', '4', '1', '1'),
        _row('test', '1', '2', '3', '1', '1'),
        _row('pilot01', '2', '1', '6', '1', '2'),
    ], columns=config.RAW_COLUMNS)
    return pd.concat([raw, noise], ignore_index=True)


@pytest.fixture
def raw_export():
    """Two participants, 2 days x 5 prompts, plus rows that must be dropped."""
    return add_noise_rows(build_raw_export(['esm001', 'esm002']))


@pytest.fixture
def study_export():
    """Eight participants across four groups, 3 days x 5 prompts."""
    return build_raw_export(MONIKERS, n_days=3, n_timepoints=5, seed=7)


@pytest.fixture
def group_covariates():
    return pd.DataFrame({
        config.COL_MONIKER: MONIKERS,
        config.GROUP_COLUMN: GROUPS,
        config.COMPLETION_COLUMN: [92.0, 88.5, 71.0, 64.5, 80.0, 77.5, 58.0, 61.0],
    })


def make_wide(n_participants=2, n_days=2, n_timepoints=5, variables=None, seed=0):
    """Wide Block 1 table with integer Likert scores in every variable column."""
    variables = list(config.get_block1_variables() if variables is None else variables)
    rng = np.random.default_rng(seed)
    rows = []
    for p in range(1, n_participants + 1):
        for day in range(1, n_days + 1):
            for tp in range(1, n_timepoints + 1):
                rows.append({
                    config.COL_MONIKER: f"esm{p:03d}",
                    config.COL_TIME: f"{day}.{tp}",
                    config.COL_TESTING_DAY: day,
                    config.COL_TIMEPOINT: tp,
                })
    wide = pd.DataFrame(rows)
    for variable in variables:
        wide[variable] = rng.integers(1, 8, size=len(wide)).astype(float)
    return wide


@pytest.fixture
def block1_wide():
    return make_wide()
