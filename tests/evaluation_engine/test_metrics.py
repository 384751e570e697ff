import pytest
import numpy as np

from modules.evaluation_engine import MetricKind, score, descriptive_metrics, confusion_table
from utils.exceptions import ConfigurationError


Y_TRUE = np.array([0, 0, 1, 1, 0, 1])
SCORES = np.array([0.1, 0.4, 0.35, 0.8, 0.2, 0.9])


def test_parse_accepts_names_and_members():
    assert MetricKind.parse('roc_auc') is MetricKind.ROC_AUC
    assert MetricKind.parse(MetricKind.F1) is MetricKind.F1
    with pytest.raises(ConfigurationError):
        MetricKind.parse('rmse')

def test_roc_auc():
    # One discordant pair (0.4 vs 0.35) out of nine
    assert score('roc_auc', Y_TRUE, SCORES) == pytest.approx(8 / 9)

def test_threshold_metrics():
    # Predictions at 0.5: [0, 0, 0, 1, 0, 1]
    assert score('accuracy', Y_TRUE, SCORES) == pytest.approx(5 / 6)
    assert score('balanced_accuracy', Y_TRUE, SCORES) == pytest.approx((1.0 + 2 / 3) / 2)
    assert score('f1', Y_TRUE, SCORES) == pytest.approx(0.8)
    assert score('accuracy', Y_TRUE, SCORES, threshold=0.3) == pytest.approx(5 / 6)

def test_string_positive_label():
    labels = np.where(Y_TRUE == 1, 'high', 'low')
    assert score('roc_auc', labels, SCORES, positive_label='high') == pytest.approx(8 / 9)

def test_single_class_is_undefined_for_ranking_metrics():
    with pytest.raises(ValueError, match="only one class"):
        score('roc_auc', np.ones(4), np.linspace(0, 1, 4))
    assert score('accuracy', np.ones(4), np.full(4, 0.9)) == 1.0

def test_descriptive_metrics():
    metrics = descriptive_metrics(Y_TRUE, SCORES)
    assert metrics['n_samples'] == 6
    assert metrics['positive_rate'] == pytest.approx(0.5)
    assert metrics['precision'] == pytest.approx(1.0)
    assert metrics['recall'] == pytest.approx(2 / 3)
    assert metrics['roc_auc'] == pytest.approx(8 / 9)

def test_descriptive_metrics_single_class():
    metrics = descriptive_metrics(np.zeros(3), np.array([0.1, 0.2, 0.7]))
    assert np.isnan(metrics['roc_auc'])
    assert np.isnan(metrics['average_precision'])

def test_confusion_table_layout():
    cm = confusion_table(Y_TRUE, SCORES)
    assert cm.tolist() == [[3, 0], [1, 2]]
