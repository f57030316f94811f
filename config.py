# -*- coding: utf-8 -*-
"""
ESM project configuration

This file holds every configuration parameter of the project: data paths,
raw file layout, participant exclusion list, the variable key lookup tables,
block definitions and the parameters of the missingness and instability
analyses.
"""

import os

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
DATA_ROOT = os.path.abspath(os.path.join(PROJECT_ROOT, '..', 'data'))

ESM_RAW_DATA_PATH = os.path.join(DATA_ROOT, 'esm', 'esm_raw.csv')
GROUP_COVARIATES_PATH = os.path.join(DATA_ROOT, 'esm', 'participant_groups.csv')

ESM_RESULTS_DIR = os.path.join(PROJECT_ROOT, 'results', 'esm')
PREPROCESSED_DIR = os.path.join(ESM_RESULTS_DIR, 'preprocessed')
MISSINGNESS_DIR = os.path.join(ESM_RESULTS_DIR, 'missingness')
INSTABILITY_DIR = os.path.join(ESM_RESULTS_DIR, 'instability')

# =============================================================================
# RAW FILE LAYOUT
# =============================================================================

# Column names in the raw export (all fields are read as text)
COL_MONIKER = 'moniker'
COL_BLOCK = 'block'
COL_ITEM = 'item'
COL_ANSWER = 'answer'
COL_TIMEPOINT = 'timepoint'
COL_TESTING_DAY = 'testing_day'

RAW_COLUMNS = [
    COL_MONIKER,
    COL_BLOCK,
    COL_ITEM,
    COL_ANSWER,
    COL_TIMEPOINT,
    COL_TESTING_DAY,
]

# Columns created by the pipeline
COL_TIME = 'time'              # composite key "testing_day.timepoint" (string)
COL_ORDER = 'obs_order'        # native row position in the raw export
COL_ANSWER_RAW = 'answer_raw'  # answer text before normalization
COL_VARIABLE = 'variable'
COL_VALUE = 'value'
COL_SEQ_INDEX = 'seq_index'

# Empty string represents null in the raw export
NULL_SENTINEL = ''

# Testing day recorded when a session was started by mistake
INVALID_TESTING_DAY = '0'

# Ordered prefix rules for answer normalization. First matching prefix wins
# and the comparison is case sensitive (anchors are exported verbatim).
ANSWER_PREFIX_RULES = [
    ('1', 1),
    ('7', 7),
    ('no', 0),
    ('yes', 1),
]

# =============================================================================
# PARTICIPANTS
# =============================================================================

# Pilot, test and dropout monikers. All of their rows are removed.
EXCLUDED_MONIKERS = [
    'pilot01',
    'pilot02',
    'pilot03',
    'test',
    'test_admin',
    'demo',
    'esm045',  # dropout after day 2
    'esm077',  # dropout after day 1
    'esm103',  # withdrew consent
]

# Group covariate file (one row per moniker)
GROUP_COLUMN = 'group'
COMPLETION_COLUMN = 'completion_pct'
GROUP_LEVELS = ['control', 'depression', 'anxiety', 'comorbid']

# =============================================================================
# VARIABLE KEY
# =============================================================================

# (block, item code) -> canonical variable name, plain integer item codes
VARIABLE_KEY = {
    # Block 1: momentary emotions
    ('1', '1'): 'Enthusiastic',
    ('1', '2'): 'Happy',
    ('1', '3'): 'Pleased',
    ('1', '4'): 'Relaxed',
    ('1', '5'): 'Angry',
    ('1', '6'): 'Nervous',
    ('1', '7'): 'Sad',
    ('1', '8'): 'Stressed',
    # Block 1: mind wandering (follow-ups only shown when MWoccur = 1)
    ('1', '9'): 'MWoccur',
    ('1', '10'): 'MWvalence',
    ('1', '11'): 'MWsubject',
    ('1', '12'): 'MWtemporal',
    ('1', '13'): 'MWimmersion',
    ('1', '14'): 'MWcontrol',
    ('1', '15'): 'MWspecific',
    # Block 1: context, same cadence but not analysed
    ('1', '16'): 'Company',
    ('1', '17'): 'Activity',
    # Block 2: daily mood, sleep and emotion regulation
    ('2', '1'): 'DailyMood',
    ('2', '2'): 'SleepQuality',
    ('2', '3'): 'SleepHours',
    ('2', '4'): 'Reappraisal',
    ('2', '5'): 'Suppression',
    ('2', '6'): 'Rumination',
    ('2', '7'): 'Distraction',
    ('2', '8'): 'Acceptance',
    ('2', '9'): 'ProblemSolving',
    ('2', '10'): 'SocialSupport',
}

# Item codes carrying a suffix letter: t = chronometry, e = efficacy,
# x = extended question
VARIABLE_KEY_SUFFIXED = {
    ('2', '5t'): 'SleepTime',
    ('2', '6t'): 'WakeTime',
    ('2', '12e'): 'ReappraisalEfficacy',
    ('2', '13e'): 'SuppressionEfficacy',
    ('2', '14e'): 'RuminationEfficacy',
    ('2', '15e'): 'DistractionEfficacy',
    ('2', '16e'): 'AcceptanceEfficacy',
    ('2', '17x'): 'StrategyOther',
}

# Variables whose answers are kept as text (time of day, free text)
FREE_TEXT_VARIABLES = ['SleepTime', 'WakeTime', 'StrategyOther']

# =============================================================================
# BLOCKS
# =============================================================================

EMOTION_VARIABLES = [
    'Enthusiastic', 'Happy', 'Pleased', 'Relaxed',
    'Angry', 'Nervous', 'Sad', 'Stressed',
]

MW_GATE_VARIABLE = 'MWoccur'
MW_FOLLOWUP_VARIABLES = [
    'MWvalence', 'MWsubject', 'MWtemporal',
    'MWimmersion', 'MWcontrol', 'MWspecific',
]
MW_VARIABLES = [MW_GATE_VARIABLE] + MW_FOLLOWUP_VARIABLES

DAILY_BLOCK_ID = '2'

# 14 testing days: 5 prompts a day for Block 1, one daily survey for Block 2
N_TESTING_DAYS = 14
BLOCK_TIMEPOINTS = {
    'block1': 70,
    'block2': 14,
}

# The daily survey is answered at the first prompt of each testing day
DAILY_SURVEY_TIMEPOINT = '1'

# =============================================================================
# MISSINGNESS
# =============================================================================

# Sleep and wake time were almost never stored because of a collection
# defect. They remain in the wide table; set the flag to leave them out of
# the missingness summaries.
UNUSABLE_VARIABLES = ['SleepTime', 'WakeTime']
MISSINGNESS_EXCLUDE_UNUSABLE = False

# =============================================================================
# INSTABILITY (MSSD)
# =============================================================================

# NOTE: 'Pleased' is listed under negative affect as well. Suspected
# labelling error in the study protocol, kept until the study team confirms.
AFFECT_COMPOSITES = {
    'positive': ['Enthusiastic', 'Happy', 'Pleased', 'Relaxed'],
    'negative': ['Angry', 'Pleased', 'Nervous', 'Sad', 'Stressed'],
}

MIN_VALID_TIMEPOINTS = 2

# =============================================================================
# GROUP COMPARISON
# =============================================================================

# |skewness| above this, or a Shapiro-Wilk p below ALPHA in any group,
# selects the rank-based test
SKEW_THRESHOLD = 1.0
NORMALITY_ALPHA = 0.05


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_variable_key():
    """
    Combine both lookup tables into one mapping.

    Returns:
        dict: (block, item code) -> canonical variable name
    """
    combined = dict(VARIABLE_KEY)
    combined.update(VARIABLE_KEY_SUFFIXED)
    return combined


def get_block1_variables():
    """Variables that make up Block 1 (emotions + mind wandering)."""
    return EMOTION_VARIABLES + MW_VARIABLES


def get_block2_variables():
    """Variables of the daily block, in lookup-table order."""
    return [name for (block, _), name in get_variable_key().items()
            if block == DAILY_BLOCK_ID]


def get_observations_per_participant(block_name):
    """
    Expected number of long-format rows per participant in a block.

    Args:
        block_name (str): 'block1' or 'block2'

    Returns:
        int: variables per timepoint x timepoints in the block
    """
    if block_name == 'block1':
        n_variables = len(get_block1_variables())
    elif block_name == 'block2':
        n_variables = len(get_block2_variables())
    else:
        raise ValueError(f"Unknown block: {block_name}")
    return n_variables * BLOCK_TIMEPOINTS[block_name]


def get_expected_time_keys(block_name):
    """
    Time keys ("testing_day.timepoint") of the study design for a block.

    Args:
        block_name (str): 'block1' or 'block2'

    Returns:
        list: Keys in chronological order
    """
    days = range(1, N_TESTING_DAYS + 1)
    if block_name == 'block1':
        prompts_per_day = BLOCK_TIMEPOINTS['block1'] // N_TESTING_DAYS
        return [f"{d}.{t}" for d in days for t in range(1, prompts_per_day + 1)]
    elif block_name == 'block2':
        return [f"{d}.{DAILY_SURVEY_TIMEPOINT}" for d in days]
    raise ValueError(f"Unknown block: {block_name}")


def get_missingness_excluded_variables():
    """Variables left out of the missingness summaries."""
    return list(UNUSABLE_VARIABLES) if MISSINGNESS_EXCLUDE_UNUSABLE else []


# =============================================================================
# CONFIGURATION CHECK
# =============================================================================

def validate_config():
    """Check that the configuration is internally consistent."""
    plain_keys = set(VARIABLE_KEY)
    suffixed_keys = set(VARIABLE_KEY_SUFFIXED)
    assert not plain_keys & suffixed_keys, (
        f"Keys present in both lookup tables: {sorted(plain_keys & suffixed_keys)}"
    )

    names = list(get_variable_key().values())
    assert len(names) == len(set(names)), "Variable names are not unique"

    for variables in AFFECT_COMPOSITES.values():
        assert all(v in EMOTION_VARIABLES for v in variables), (
            "Composite items must belong to the emotion set"
        )

    assert all(v in names for v in get_block1_variables()), (
        "Some Block 1 variables are missing from the variable key"
    )
    assert all(v in names for v in FREE_TEXT_VARIABLES), (
        "Some free-text variables are missing from the variable key"
    )

    print("Configuration OK")


if __name__ == "__main__":
    validate_config()
    print(f"   Variables in key: {len(get_variable_key())}")
    print(f"   Block 1 variables: {len(get_block1_variables())}")
    print(f"   Block 2 variables: {len(get_block2_variables())}")
    print(f"   Excluded monikers: {len(EXCLUDED_MONIKERS)}")
