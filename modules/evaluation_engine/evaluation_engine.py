import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from modules.base.base_engine import BaseEngine
from modules.evaluation_engine.metrics import (
    MetricKind,
    confusion_table,
    descriptive_metrics,
    report_dict,
    score,
)
from modules.model_factory import predict_scores
from utils.error_handling import handle_engine_errors
from utils.exceptions import FinalEvaluationError
from utils.file_io import save_dataframe, save_json
from utils import constants


@dataclass
class FinalMetrics:
    metric: str
    value: float
    secondary: Dict[str, Any] = field(default_factory=dict)
    confusion_matrix: Optional[np.ndarray] = None
    report: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'metric': self.metric,
            'value': self.value,
            'secondary': self.secondary,
            'confusion_matrix': self.confusion_matrix,
            'classification_report': self.report,
        }


class EvaluationEngine(BaseEngine):
    """
    Scores the refit model once on the untouched test set.

    The primary metric matches the one used for selection; everything else
    (confusion matrix, precision/recall, calibration scores) is descriptive
    output for the reporting collaborator.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.positive_label = config.get('data', {}).get('positive_label', 1)
        self.threshold = config.get('evaluation', {}).get('threshold', 0.5)

    def _get_engine_directory_name(self) -> str:
        return constants.EVALUATION_DIR

    @handle_engine_errors("Evaluation")
    def execute(self, model, X_test: pd.DataFrame, y_test: pd.Series, metric=constants.DEFAULT_METRIC,
                run_id: Optional[str] = None) -> FinalMetrics:
        """
        Compute holdout metrics and save evaluation reports.

        Returns:
            FinalMetrics for the test set.
        """
        metric = MetricKind.parse(metric)
        self.logger.info(f"Starting holdout evaluation on {len(X_test)} test rows...")

        try:
            scores = predict_scores(model, X_test, self.positive_label)
            value = score(metric, y_test, scores, positive_label=self.positive_label, threshold=self.threshold)
        except Exception as e:
            raise FinalEvaluationError(f"Scoring on the test set failed: {e}",
                                       stage="final_evaluation", key=len(X_test)) from e

        final = FinalMetrics(
            metric=metric.value,
            value=value,
            secondary=descriptive_metrics(y_test, scores, self.positive_label, self.threshold),
            confusion_matrix=confusion_table(y_test, scores, self.positive_label, self.threshold),
            report=report_dict(y_test, scores, self.positive_label, self.threshold),
        )

        self._save_artifacts(final, X_test, y_test, scores, run_id)
        self.logger.info(f"Evaluation complete. Test {metric.value}: {value:.4f}")
        return final

    def _save_artifacts(self, final: FinalMetrics, X_test: pd.DataFrame, y_test: pd.Series,
                        scores: np.ndarray, run_id: Optional[str]) -> None:
        save_json({'run_id': run_id, **final.to_dict()}, self.output_dir / constants.FINAL_METRICS_FILE)

        cm = pd.DataFrame(final.confusion_matrix,
                          index=['true_negative_class', 'true_positive_class'],
                          columns=['pred_negative_class', 'pred_positive_class'])
        save_dataframe(cm, self.output_dir / constants.CONFUSION_MATRIX_FILE,
                       excel_copy=self.excel_copy, index=True)

        predictions = pd.DataFrame({
            'row_index': np.arange(len(y_test)),
            'y_true': np.asarray(y_test),
            'score': scores.astype('float32'),
            'y_pred': (scores >= self.threshold).astype(int),
        })
        save_dataframe(predictions, self.output_dir / constants.TEST_PREDICTIONS_FILE,
                       excel_copy=self.excel_copy, index=False)
