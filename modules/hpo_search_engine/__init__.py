"""
HPO Search Engine
=================

Responsibility:
- Latin-hypercube style sampling of hyperparameter configurations.
- Parallel scoring of every (rolling fold, configuration) pair.
- Failure isolation: a failing pair becomes a failed record, not an abort.
- Mean-across-folds selection with a lowest-id tie-break.
"""

from .hpo_search_engine import (
    HPOSearchEngine,
    MetricRecord,
    SelectionResult,
    evaluate_pair,
    records_to_frame,
    resolve_n_jobs,
    select_best,
)
from .parameter_space import (
    Configuration,
    ParameterRange,
    ParameterSpace,
    configurations_to_frame,
    sample_configurations,
)

__all__ = [
    'HPOSearchEngine', 'MetricRecord', 'SelectionResult', 'evaluate_pair', 'records_to_frame',
    'resolve_n_jobs', 'select_best', 'Configuration', 'ParameterRange', 'ParameterSpace',
    'configurations_to_frame', 'sample_configurations',
]
