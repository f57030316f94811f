# -*- coding: utf-8 -*-
"""ESM Integrity Validator

This module checks that a block contains the expected number of observations
and, when it does not, drills down to the time keys and participants
responsible for the deficit. Problems are reported, never raised: incomplete
collection is expected and the exclusion policy is decided downstream.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

import config
from esm.data_loader import sort_by_time_key

logger = logging.getLogger(__name__)


class ESMIntegrityValidator:
    """Validates observation counts of one block.

    Checks performed:
    - Total count: participants x observations per participant
    - Time key counts: participants x variables per timepoint for each key
    - Participant presence at under-represented time keys
    - Per-participant totals

    Attributes:
        data: Long-format observations of one block
        observations_per_participant: Expected rows per participant
        variables_per_timepoint: Expected rows per (participant, time)
        participants: Participant IDs expected in the block
        expected_time_keys: Time keys expected in the block

    Example:
        >>> validator = ESMIntegrityValidator(block2, observations_per_participant=252,
        ...                                   variables_per_timepoint=18)
        >>> results = validator.validate_all()
        >>> results['summary']['deficit']
        0
    """

    def __init__(self, data: pd.DataFrame, observations_per_participant: int,
                 variables_per_timepoint: Optional[int] = None,
                 participants: Optional[Iterable[str]] = None,
                 expected_time_keys: Optional[Iterable[str]] = None):
        """Initialize validator with block data and expected cardinality.

        Args:
            data: Long-format observations with moniker and time columns
            observations_per_participant: Expected rows per participant
            variables_per_timepoint: Expected rows per (participant, time).
                Defaults to the number of distinct variables in data
            participants: Participant roster. Defaults to the monikers in data
            expected_time_keys: Time keys to check. Defaults to every key
                observed for at least one participant
        """
        self.data = data.copy()
        self.observations_per_participant = int(observations_per_participant)

        if variables_per_timepoint is None:
            variables_per_timepoint = self.data[config.COL_VARIABLE].nunique()
        self.variables_per_timepoint = int(variables_per_timepoint)

        if participants is None:
            participants = self.data[config.COL_MONIKER].unique()
        self.participants = sorted(set(participants))

        if expected_time_keys is None:
            expected_time_keys = self.data[config.COL_TIME].unique()
        self.expected_time_keys = list(dict.fromkeys(expected_time_keys))

    def count_by_participant_time(self) -> pd.DataFrame:
        """Observed row count for each (participant, time) key.

        Returns:
            DataFrame with columns: moniker, time, n_observed
        """
        counts = self.data.groupby(
            [config.COL_MONIKER, config.COL_TIME]
        ).size().reset_index(name='n_observed')
        return counts

    def validate_totals(self) -> Dict[str, int]:
        """Compare the observed total against participants x observations.

        Returns:
            Dictionary with n_participants, observations_per_participant,
            expected_total, observed_total and deficit (expected - observed)
        """
        n_participants = len(self.participants)
        expected_total = n_participants * self.observations_per_participant
        observed_total = len(self.data)

        return {
            'n_participants': n_participants,
            'observations_per_participant': self.observations_per_participant,
            'expected_total': expected_total,
            'observed_total': observed_total,
            'deficit': expected_total - observed_total,
        }

    def validate_time_keys(self) -> pd.DataFrame:
        """Find time keys with fewer rows than participants x variables.

        Returns:
            DataFrame with columns: time, n_observed, n_expected, deficit.
            Contains only under-represented keys, in chronological order.
        """
        n_expected = len(self.participants) * self.variables_per_timepoint

        observed = self.data.groupby(config.COL_TIME).size()
        counts = observed.reindex(self.expected_time_keys, fill_value=0)
        time_counts = pd.DataFrame({
            config.COL_TIME: counts.index,
            'n_observed': counts.values,
        })
        time_counts['n_expected'] = n_expected
        time_counts['deficit'] = time_counts['n_expected'] - time_counts['n_observed']

        issues = time_counts[time_counts['deficit'] > 0]
        return sort_by_time_key(issues).reset_index(drop=True)

    def participant_presence(self, time_key: str) -> pd.DataFrame:
        """Per-participant row count at one time key.

        Participants without any row at the key get a count of 0.

        Args:
            time_key: Composite time key, e.g. "3.2"

        Returns:
            DataFrame with columns: moniker, n_observed
        """
        at_key = self.data[self.data[config.COL_TIME] == time_key]
        counts = at_key.groupby(config.COL_MONIKER).size()
        counts = counts.reindex(self.participants, fill_value=0)
        return pd.DataFrame({
            config.COL_MONIKER: counts.index,
            'n_observed': counts.values.astype(int),
        })

    def find_missing_participants(self, time_key: str) -> pd.DataFrame:
        """Participants with fewer rows than expected at one time key.

        Args:
            time_key: Composite time key

        Returns:
            DataFrame with columns: moniker, time, n_observed, n_expected
        """
        presence = self.participant_presence(time_key)
        missing = presence[presence['n_observed'] < self.variables_per_timepoint].copy()
        missing.insert(1, config.COL_TIME, time_key)
        missing['n_expected'] = self.variables_per_timepoint
        return missing.reset_index(drop=True)

    def validate_participant_totals(self) -> pd.DataFrame:
        """Participants whose total row count is below the expected count.

        Returns:
            DataFrame with columns: moniker, n_observed, n_expected, deficit
        """
        counts = self.data.groupby(config.COL_MONIKER).size()
        counts = counts.reindex(self.participants, fill_value=0)
        totals = pd.DataFrame({
            config.COL_MONIKER: counts.index,
            'n_observed': counts.values.astype(int),
        })
        totals['n_expected'] = self.observations_per_participant
        totals['deficit'] = totals['n_expected'] - totals['n_observed']
        return totals[totals['deficit'] != 0].reset_index(drop=True)

    def drill_down(self, time_keys: Optional[List[str]] = None) -> pd.DataFrame:
        """Identify the participants missing observations at each suspect key.

        Args:
            time_keys: Keys to inspect. Defaults to every under-represented key

        Returns:
            DataFrame with columns: moniker, time, n_observed, n_expected
        """
        if time_keys is None:
            time_keys = list(self.validate_time_keys()[config.COL_TIME])

        frames = [self.find_missing_participants(key) for key in time_keys]
        frames = [f for f in frames if not f.empty]
        if not frames:
            return pd.DataFrame(columns=[config.COL_MONIKER, config.COL_TIME,
                                         'n_observed', 'n_expected'])
        return pd.concat(frames, ignore_index=True)

    def validate_all(self) -> Dict[str, Any]:
        """Run all checks and compile a discrepancy report.

        Returns:
            Dictionary containing:
            - summary: Dict from validate_totals() plus n_time_keys and
              variables_per_timepoint
            - time_key_issues: DataFrame from validate_time_keys()
            - missing_observations: DataFrame from drill_down()
            - participant_issues: DataFrame from validate_participant_totals()
            - is_complete: True when nothing is missing
            - timestamp: ISO format timestamp of the validation run
        """
        summary = self.validate_totals()
        summary['n_time_keys'] = len(self.expected_time_keys)
        summary['variables_per_timepoint'] = self.variables_per_timepoint

        time_key_issues = self.validate_time_keys()
        missing = self.drill_down(list(time_key_issues[config.COL_TIME]))
        participant_issues = self.validate_participant_totals()

        is_complete = summary['deficit'] == 0 and time_key_issues.empty
        if is_complete:
            logger.info(
                f"Integrity check passed: {summary['observed_total']} observations, "
                f"{summary['n_participants']} participants"
            )
        else:
            logger.warning(
                f"Integrity check: expected {summary['expected_total']}, observed "
                f"{summary['observed_total']} (deficit {summary['deficit']}); "
                f"{len(time_key_issues)} time key(s) under-represented, "
                f"{missing[config.COL_MONIKER].nunique()} participant(s) affected"
            )

        return {
            'summary': summary,
            'time_key_issues': time_key_issues,
            'missing_observations': missing,
            'participant_issues': participant_issues,
            'is_complete': is_complete,
            'timestamp': datetime.now().isoformat(),
        }
