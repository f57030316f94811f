# -*- coding: utf-8 -*-
"""ESM (Experience Sampling Method) Analysis Module

This module provides functionality for cleaning, verifying and reshaping
long-format ESM survey exports and for computing affect instability.

The module includes:
    - ESMDataLoader: Load the raw export, drop invalid rows, normalize answers
    - VariableRemapper: Map (block, item code) pairs to variable names
    - BlockSplitter: Split the cleaned table into Block 1 and Block 2
    - filter_branching_logic: Remove mind-wandering follow-ups skipped by design
    - ESMIntegrityValidator: Check observation counts and drill into deficits
    - pivot_to_wide: Long to wide reshape guarded against duplicate keys
    - MissingnessProfiler: Missingness rates, patterns and group completion
    - InstabilityCalculator: Per-participant MSSD of positive/negative affect

Example:
    >>> from esm.pipeline import run_pipeline
    >>> result = run_pipeline('data/esm/esm_raw.csv')
    >>> result.block1_wide.head()
"""

__version__ = "1.0.0"
