# -*- coding: utf-8 -*-
"""
ESM Block Splitter Module

Partitions cleaned observations into blocks that share a measurement cadence.
"""

import logging
from typing import Dict, Iterable, Optional

import pandas as pd

import config

logger = logging.getLogger(__name__)


class BlockSplitter:
    """
    Splits cleaned observations by timescale.

    - Block 1 (several prompts a day): emotion and mind-wandering variables
    - Block 2 (daily): every row whose block ID is the daily block

    Attributes:
        emotion_variables (list): Block 1 emotion set
        mw_variables (list): Block 1 mind-wandering set
        daily_block_id (str): Block ID of the daily survey

    Example:
        >>> splitter = BlockSplitter()
        >>> blocks = splitter.split(cleaned)
        >>> blocks['block1'].shape, blocks['block2'].shape
    """

    def __init__(self, emotion_variables: Optional[Iterable[str]] = None,
                 mw_variables: Optional[Iterable[str]] = None,
                 daily_block_id: Optional[str] = None):
        self.emotion_variables = list(
            config.EMOTION_VARIABLES if emotion_variables is None else emotion_variables
        )
        self.mw_variables = list(
            config.MW_VARIABLES if mw_variables is None else mw_variables
        )
        self.daily_block_id = str(
            config.DAILY_BLOCK_ID if daily_block_id is None else daily_block_id
        )

    @property
    def block1_variables(self):
        return self.emotion_variables + self.mw_variables

    def block1(self, data: pd.DataFrame) -> pd.DataFrame:
        """Rows whose variable is in the emotion or mind-wandering set."""
        mask = data[config.COL_VARIABLE].isin(self.block1_variables)
        return data[mask].reset_index(drop=True)

    def block2(self, data: pd.DataFrame) -> pd.DataFrame:
        """Rows of the daily block."""
        mask = data[config.COL_BLOCK] == self.daily_block_id
        return data[mask].reset_index(drop=True)

    def split(self, data: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """
        Split cleaned observations into both blocks.

        Args:
            data (pd.DataFrame): Output of VariableRemapper.remap()

        Returns:
            Dict[str, pd.DataFrame]: {'block1': ..., 'block2': ...}
        """
        blocks = {
            'block1': self.block1(data),
            'block2': self.block2(data),
        }

        shared = (set(blocks['block1'][config.COL_VARIABLE])
                  & set(blocks['block2'][config.COL_VARIABLE]))
        if shared:
            logger.warning(f"Variables present in both blocks: {sorted(shared)}")

        for name, block in blocks.items():
            logger.info(
                f"{name}: {len(block)} rows, {block[config.COL_VARIABLE].nunique()} variables, "
                f"{block[config.COL_MONIKER].nunique()} participants"
            )
        return blocks
