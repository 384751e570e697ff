import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

import pandas as pd
from sklearn.pipeline import Pipeline

from modules.evaluation_engine import EvaluationEngine, FinalMetrics
from modules.hpo_search_engine import Configuration, HPOSearchEngine, SelectionResult
from modules.split_engine import Fold, SplitEngine
from modules.training_engine import TrainingEngine
from utils import constants


@dataclass
class TuningRunResult:
    folds: List[Fold]
    selection: SelectionResult
    model: Pipeline
    final_metrics: FinalMetrics


class TuningController:
    """
    Orchestrates one tuning run over a time-sorted dataset:
    split -> sample -> grid evaluation -> selection -> refit -> holdout score.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.run_id = Path(config.get('outputs', {}).get('base_results_dir', 'results')).name
        self.metric = config.get('hyperparameters', {}).get('metric', constants.DEFAULT_METRIC)

        self.split_engine = SplitEngine(config, logger)
        self.hpo_engine = HPOSearchEngine(config, logger)
        self.training_engine = TrainingEngine(config, logger)
        self.evaluation_engine = EvaluationEngine(config, logger)

    def run(self, df: pd.DataFrame) -> TuningRunResult:
        train_df, test_df, folds = self.split_engine.execute(df, self.run_id)

        self.logger.info(f"\n{'='*60}")
        self.logger.info(f"HYPERPARAMETER SEARCH | Folds: {len(folds)} | Metric: {self.metric}")
        self.logger.info(f"{'='*60}")
        selection = self.hpo_engine.execute(train_df, folds, self.run_id)

        self.logger.info(f"\n{'='*60}")
        self.logger.info(f"FINAL REFIT & HOLDOUT EVALUATION | Config: {selection.config_id}")
        self.logger.info(f"{'='*60}")
        model, final_metrics = self.finalize(selection.configuration, train_df, test_df)

        return TuningRunResult(folds=folds, selection=selection, model=model, final_metrics=final_metrics)

    def finalize(self, configuration: Configuration, train_df: pd.DataFrame,
                 test_df: pd.DataFrame) -> Tuple[Pipeline, FinalMetrics]:
        """Refit on all of ``train_df``, then score once on ``test_df``. Never feeds back into selection."""
        X_train, y_train = self.hpo_engine.prepare_xy(train_df)
        X_test, y_test = self.hpo_engine.prepare_xy(test_df)

        model = self.training_engine.execute(X_train, y_train, configuration, self.run_id)
        final_metrics = self.evaluation_engine.execute(model, X_test, y_test, self.metric, self.run_id)
        return model, final_metrics
