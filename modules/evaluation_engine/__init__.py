"""
Evaluation Engine
=================

Responsibility:
- Metric definitions shared by tuning and holdout evaluation.
- One-shot scoring of the refit model on the test set.
"""

from .metrics import MetricKind, score, descriptive_metrics, confusion_table
from .evaluation_engine import EvaluationEngine, FinalMetrics

__all__ = ['MetricKind', 'score', 'descriptive_metrics', 'confusion_table', 'EvaluationEngine', 'FinalMetrics']
