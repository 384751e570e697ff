"""
Split Engine
============

Responsibility:
- Chronological train/test split of the sorted dataset.
- Rolling (or expanding) window folds for leakage-safe tuning.
"""

from .split_engine import SplitEngine, Fold, rolling_window_split, initial_time_split, folds_to_frame

__all__ = ['SplitEngine', 'Fold', 'rolling_window_split', 'initial_time_split', 'folds_to_frame']
