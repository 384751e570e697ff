"""
Training Engine Module
======================

Responsibility:
- Refits the selected configuration on the full training set.
- Persists the fitted pipeline (.pkl) and training metadata (.json).
"""

from .training_engine import TrainingEngine

__all__ = ['TrainingEngine']
