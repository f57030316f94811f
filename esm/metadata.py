# -*- coding: utf-8 -*-
"""
ESM Processing Metadata Module

This module documents a pipeline run (loader drop counts, variable key,
composite definitions and data summary) as a JSON-serialisable dictionary.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd

import config
from esm import __version__


class PreprocessingMetadata:
    """
    Generates metadata documentation for ESM preprocessing.

    Example:
        >>> metadata = PreprocessingMetadata().generate_metadata(cleaned, drop_log)
        >>> with open('preprocessing_metadata.json', 'w') as f:
        ...     json.dump(metadata, f, indent=2)
    """

    def generate_metadata(self, data: pd.DataFrame,
                          drop_log: Optional[Dict[str, int]] = None,
                          block_sizes: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        """
        Generate preprocessing metadata.

        Args:
            data (pd.DataFrame): Cleaned, remapped long table
            drop_log (dict, optional): ESMDataLoader.drop_log
            block_sizes (dict, optional): Block name -> row count

        Returns:
            Dictionary containing all preprocessing metadata
        """
        variable_key = {
            f"{block}/{item}": name
            for (block, item), name in config.get_variable_key().items()
        }

        return {
            'preprocessing_version': __version__,
            'timestamp': datetime.now().isoformat(),
            'data_summary': {
                'n_participants': int(data[config.COL_MONIKER].nunique()),
                'n_observations': int(len(data)),
                'n_time_keys': int(data[config.COL_TIME].nunique()),
                'n_variables': int(data[config.COL_VARIABLE].nunique())
                if config.COL_VARIABLE in data.columns else 0,
                'block_sizes': {k: int(v) for k, v in (block_sizes or {}).items()},
            },
            'loading': {
                'null_sentinel': config.NULL_SENTINEL,
                'invalid_testing_day': config.INVALID_TESTING_DAY,
                'excluded_monikers': list(config.EXCLUDED_MONIKERS),
                'answer_prefix_rules': [list(rule) for rule in config.ANSWER_PREFIX_RULES],
                'rows_dropped': {k: int(v) for k, v in (drop_log or {}).items()},
            },
            'variable_key': variable_key,
            'branching_logic': {
                'gate_variable': config.MW_GATE_VARIABLE,
                'followup_variables': list(config.MW_FOLLOWUP_VARIABLES),
                'rule': 'Within each (moniker, time), rows after the first gate == 0 '
                        'followed by an empty answer are removed.',
            },
            'composites': {
                polarity: {
                    'items': list(items),
                    'formula': 'row mean of non-missing items',
                }
                for polarity, items in config.AFFECT_COMPOSITES.items()
            },
            'instability': {
                'metric': 'MSSD',
                'formula': 'sqrt(mean(diff(composite)^2)) within participant',
                'min_valid_timepoints': config.MIN_VALID_TIMEPOINTS,
            },
            'missingness': {
                'unusable_variables': list(config.UNUSABLE_VARIABLES),
                'exclude_unusable': config.MISSINGNESS_EXCLUDE_UNUSABLE,
            },
        }
