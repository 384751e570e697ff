"""
Model Factory
=============

Responsibility:
- Boundary around the boosted-tree learner: create -> fit -> predict_scores.
- Fold-local preprocessing (encoding + standardisation) inside the pipeline.
"""

from .model_factory import ModelFactory, predict_scores, split_feature_types

__all__ = ['ModelFactory', 'predict_scores', 'split_feature_types']
