import pytest
import json
import logging
import joblib
import numpy as np
import pandas as pd
from pathlib import Path
from unittest.mock import MagicMock

from modules.evaluation_engine import EvaluationEngine, FinalMetrics
from modules.hpo_search_engine import Configuration
from modules.training_engine import TrainingEngine
from utils.exceptions import FinalEvaluationError, ModelTrainingError
from utils import constants

# --- Fixtures ---

@pytest.fixture
def mock_logger():
    return MagicMock(spec=logging.Logger)

@pytest.fixture
def base_config(tmp_path):
    return {
        'data': {'label_column': 'label', 'time_column': 'month', 'positive_label': 1},
        'model': {'name': 'GradientBoostingClassifier', 'fixed_params': {'n_estimators': 10}},
        'evaluation': {'threshold': 0.5},
        'outputs': {'base_results_dir': str(tmp_path), 'save_models': True},
        '_internal_seeds': {'model': 2234},
    }

@pytest.fixture
def train_test():
    rng = np.random.default_rng(3)
    n = 160
    X = pd.DataFrame({
        'ret_vol': rng.normal(size=n),
        'size': rng.normal(size=n),
        'sector': rng.choice(['a', 'b'], size=n),
    })
    y = pd.Series((X['ret_vol'] > 0).astype(int), name='label')
    return X.iloc[:120], y.iloc[:120], X.iloc[120:], y.iloc[120:]

@pytest.fixture
def configuration():
    return Configuration(7, (('max_depth', 2), ('learning_rate', 0.1)))

# --- TrainingEngine ---

def test_refit_returns_fitted_pipeline(base_config, train_test, configuration, mock_logger, tmp_path):
    X_train, y_train, _, _ = train_test
    model = TrainingEngine(base_config, mock_logger).execute(X_train, y_train, configuration, "run_1")

    assert hasattr(model, 'predict_proba')
    assert model.named_steps['model'].max_depth == 2
    assert model.named_steps['model'].random_state == 2234

    out = Path(tmp_path) / constants.FINAL_MODEL_DIR
    assert (out / constants.FINAL_MODEL_FILE).exists()
    reloaded = joblib.load(out / constants.FINAL_MODEL_FILE)
    assert np.allclose(reloaded.predict_proba(X_train), model.predict_proba(X_train))

    with open(out / constants.TRAINING_METADATA_FILE) as f:
        meta = json.load(f)
    assert meta['config_id'] == 7
    assert meta['run_id'] == "run_1"
    assert meta['input_shape'] == [120, 3]
    assert meta['classes'] == [0, 1]

def test_refit_skips_saving_when_disabled(base_config, train_test, configuration, mock_logger, tmp_path):
    base_config['outputs']['save_models'] = False
    X_train, y_train, _, _ = train_test
    TrainingEngine(base_config, mock_logger).execute(X_train, y_train, configuration)
    assert not (Path(tmp_path) / constants.FINAL_MODEL_DIR / constants.FINAL_MODEL_FILE).exists()

def test_refit_failure_is_final_evaluation_error(base_config, train_test, mock_logger):
    X_train, y_train, _, _ = train_test
    bad = Configuration(3, (('max_depth', -5),))
    with pytest.raises(FinalEvaluationError) as exc:
        TrainingEngine(base_config, mock_logger).execute(X_train, y_train, bad)
    assert exc.value.stage == "final_refit"
    assert exc.value.key == 3

def test_unknown_model_is_training_error(base_config, train_test, configuration, mock_logger):
    base_config['model']['name'] = 'NoSuchModel'
    X_train, y_train, _, _ = train_test
    with pytest.raises(ModelTrainingError):
        TrainingEngine(base_config, mock_logger).execute(X_train, y_train, configuration)

def test_empty_training_set_rejected(base_config, configuration, mock_logger):
    with pytest.raises(FinalEvaluationError):
        TrainingEngine(base_config, mock_logger).execute(pd.DataFrame(), pd.Series(dtype=int), configuration)

# --- EvaluationEngine ---

def test_holdout_metrics_and_artifacts(base_config, train_test, configuration, mock_logger, tmp_path):
    X_train, y_train, X_test, y_test = train_test
    model = TrainingEngine(base_config, mock_logger).execute(X_train, y_train, configuration)

    final = EvaluationEngine(base_config, mock_logger).execute(model, X_test, y_test, 'roc_auc', "run_1")

    assert isinstance(final, FinalMetrics)
    assert final.metric == 'roc_auc'
    assert 0.5 < final.value <= 1.0
    assert final.confusion_matrix.shape == (2, 2)
    assert final.confusion_matrix.sum() == len(y_test)
    assert final.secondary['n_samples'] == 40
    assert final.secondary['roc_auc'] == pytest.approx(final.value)

    out = Path(tmp_path) / constants.EVALUATION_DIR
    with open(out / constants.FINAL_METRICS_FILE) as f:
        payload = json.load(f)
    assert payload['metric'] == 'roc_auc'
    assert payload['confusion_matrix'] == final.confusion_matrix.tolist()

    preds = pd.read_parquet(out / constants.TEST_PREDICTIONS_FILE)
    assert len(preds) == 40
    assert preds['score'].between(0, 1).all()
    assert (out / constants.CONFUSION_MATRIX_FILE).exists()

def test_single_class_test_set_fails(base_config, train_test, configuration, mock_logger):
    X_train, y_train, X_test, _ = train_test
    model = TrainingEngine(base_config, mock_logger).execute(X_train, y_train, configuration)
    y_flat = pd.Series(np.ones(len(X_test), dtype=int))

    with pytest.raises(FinalEvaluationError) as exc:
        EvaluationEngine(base_config, mock_logger).execute(model, X_test, y_flat, 'roc_auc')
    assert exc.value.stage == "final_evaluation"

def test_threshold_metric_on_holdout(base_config, train_test, configuration, mock_logger):
    X_train, y_train, X_test, y_test = train_test
    model = TrainingEngine(base_config, mock_logger).execute(X_train, y_train, configuration)
    final = EvaluationEngine(base_config, mock_logger).execute(model, X_test, y_test, 'accuracy')
    assert final.value == pytest.approx(final.secondary['accuracy'])
