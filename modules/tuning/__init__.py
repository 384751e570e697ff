"""
Tuning Module.

- TuningController: runs split, search, selection, refit and holdout
  evaluation in order for one dataset.
"""

from .tuning_controller import TuningController, TuningRunResult

__all__ = ['TuningController', 'TuningRunResult']
