"""
Scoring functions shared by the grid evaluator and the holdout evaluation.

Every metric here is higher-is-better, so configuration selection is
always a maximisation.
"""
from enum import Enum
from typing import Any, Dict

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    average_precision_score,
    balanced_accuracy_score,
    brier_score_loss,
    classification_report,
    confusion_matrix,
    f1_score,
    log_loss,
    precision_score,
    recall_score,
    roc_auc_score,
)

from utils.exceptions import ConfigurationError


class MetricKind(str, Enum):
    ROC_AUC = "roc_auc"
    AVERAGE_PRECISION = "average_precision"
    ACCURACY = "accuracy"
    BALANCED_ACCURACY = "balanced_accuracy"
    F1 = "f1"

    @classmethod
    def parse(cls, value) -> "MetricKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"Unsupported metric '{value}'. Available: {[m.value for m in cls]}",
                                     stage="configuration", key=value)


# Metrics that rank scores rather than thresholded labels.
PROBABILITY_METRICS = {MetricKind.ROC_AUC, MetricKind.AVERAGE_PRECISION}


def to_binary(y_true, positive_label: Any) -> np.ndarray:
    return (np.asarray(y_true) == positive_label).astype(int)


def score(metric, y_true, scores, positive_label: Any = 1, threshold: float = 0.5) -> float:
    """
    Score positive-class probabilities against true labels.

    Raises ValueError when the metric is undefined, e.g. ROC AUC on a
    validation slice that holds a single class.
    """
    metric = MetricKind.parse(metric)
    y_bin = to_binary(y_true, positive_label)
    scores = np.asarray(scores, dtype=float)

    if metric in PROBABILITY_METRICS and len(np.unique(y_bin)) < 2:
        raise ValueError(f"{metric.value} is undefined when only one class is present in y_true")

    if metric is MetricKind.ROC_AUC:
        return float(roc_auc_score(y_bin, scores))
    if metric is MetricKind.AVERAGE_PRECISION:
        return float(average_precision_score(y_bin, scores))

    y_pred = (scores >= threshold).astype(int)
    if metric is MetricKind.ACCURACY:
        return float(accuracy_score(y_bin, y_pred))
    if metric is MetricKind.BALANCED_ACCURACY:
        return float(balanced_accuracy_score(y_bin, y_pred))
    return float(f1_score(y_bin, y_pred, zero_division=0))


def descriptive_metrics(y_true, scores, positive_label: Any = 1, threshold: float = 0.5) -> Dict[str, Any]:
    """
    Secondary holdout metrics. Reported only, never used for selection.
    """
    y_bin = to_binary(y_true, positive_label)
    scores = np.asarray(scores, dtype=float)
    y_pred = (scores >= threshold).astype(int)
    both_classes = len(np.unique(y_bin)) == 2

    metrics = {
        'n_samples': int(len(y_bin)),
        'positive_rate': float(y_bin.mean()) if len(y_bin) else float('nan'),
        'threshold': threshold,
        'accuracy': float(accuracy_score(y_bin, y_pred)),
        'balanced_accuracy': float(balanced_accuracy_score(y_bin, y_pred)),
        'precision': float(precision_score(y_bin, y_pred, zero_division=0)),
        'recall': float(recall_score(y_bin, y_pred, zero_division=0)),
        'f1': float(f1_score(y_bin, y_pred, zero_division=0)),
        'brier_score': float(brier_score_loss(y_bin, scores)),
        'log_loss': float(log_loss(y_bin, np.clip(scores, 1e-15, 1 - 1e-15), labels=[0, 1])),
        'roc_auc': float(roc_auc_score(y_bin, scores)) if both_classes else float('nan'),
        'average_precision': float(average_precision_score(y_bin, scores)) if both_classes else float('nan'),
    }
    return metrics


def confusion_table(y_true, scores, positive_label: Any = 1, threshold: float = 0.5) -> np.ndarray:
    """2x2 matrix, rows = truth (negative, positive), columns = prediction."""
    y_bin = to_binary(y_true, positive_label)
    y_pred = (np.asarray(scores, dtype=float) >= threshold).astype(int)
    return confusion_matrix(y_bin, y_pred, labels=[0, 1])


def report_dict(y_true, scores, positive_label: Any = 1, threshold: float = 0.5) -> Dict[str, Any]:
    y_bin = to_binary(y_true, positive_label)
    y_pred = (np.asarray(scores, dtype=float) >= threshold).astype(int)
    return classification_report(y_bin, y_pred, labels=[0, 1], target_names=['negative', 'positive'],
                                 output_dict=True, zero_division=0)
