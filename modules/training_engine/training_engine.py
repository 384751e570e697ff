import gc
import logging
import time
from typing import Any, Dict, Optional

import joblib
import pandas as pd
from sklearn.pipeline import Pipeline

from modules.base.base_engine import BaseEngine
from modules.hpo_search_engine import Configuration
from modules.model_factory import ModelFactory, split_feature_types
from utils.error_handling import handle_engine_errors
from utils.exceptions import FinalEvaluationError, ModelTrainingError
from utils.file_io import save_json
from utils import constants


class TrainingEngine(BaseEngine):
    """
    Refits the selected configuration on the entire training set.

    No further splitting happens here: the model sees every training row
    once and is persisted for the holdout evaluation and downstream use.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.data_cfg = config.get('data', {})
        self.model_cfg = config.get('model', {})
        self.model_name = self.model_cfg.get('name', constants.DEFAULT_MODEL)
        self.fixed_params = dict(self.model_cfg.get('fixed_params', {}))
        model_seed = config.get('_internal_seeds', {}).get('model')
        if model_seed is not None:
            self.fixed_params.setdefault('random_state', model_seed)

    def _get_engine_directory_name(self) -> str:
        return constants.FINAL_MODEL_DIR

    @handle_engine_errors("Training")
    def execute(self, X: pd.DataFrame, y: pd.Series, configuration: Configuration,
                run_id: Optional[str] = None) -> Pipeline:
        """
        Train the final model on the full training dataset.

        Args:
            X: Training features.
            y: Training labels.
            configuration: Selected hyperparameter configuration.
            run_id: Run identifier.

        Returns:
            Fitted preprocessing + classifier pipeline.
        """
        self.logger.info("Starting Final Model Training...")

        if X.empty or len(X.columns) == 0:
            raise FinalEvaluationError("No features available for the final refit.", stage="final_refit", key=0)

        params = {**self.fixed_params, **configuration.as_dict()}
        categorical, numeric = split_feature_types(X, self.data_cfg.get('categorical_columns'))

        try:
            model = ModelFactory.create(self.model_name, params,
                                        categorical_features=categorical, numeric_features=numeric)
        except ValueError as e:
            raise ModelTrainingError(str(e), stage="final_refit", key=self.model_name) from e

        self.logger.info(f"Training {self.model_name} ({configuration.label}) on {len(X)} samples "
                         f"with {X.shape[1]} features.")
        try:
            start_time = time.time()
            model.fit(X, y)
            duration = time.time() - start_time
        except Exception as e:
            gc.collect()
            raise FinalEvaluationError(f"Failed to refit selected configuration: {e}",
                                       stage="final_refit", key=configuration.config_id) from e

        self.logger.info(f"Training completed in {duration:.2f} seconds.")

        if self.config.get('outputs', {}).get('save_models', True):
            self._save_artifacts(model, X, params, configuration, duration, run_id)

        gc.collect()
        return model

    def _save_artifacts(self, model: Pipeline, X: pd.DataFrame, params: Dict[str, Any],
                        configuration: Configuration, duration: float, run_id: Optional[str]) -> None:
        model_path = self.output_dir / constants.FINAL_MODEL_FILE
        joblib.dump(model, model_path)
        self.logger.info(f"Model saved to {model_path}")

        save_json({
            'run_id': run_id,
            'model': self.model_name,
            'config_id': configuration.config_id,
            'params': params,
            'features': X.columns.tolist(),
            'input_shape': list(X.shape),
            'classes': list(model.classes_),
            'training_time_sec': duration,
            'timestamp': time.strftime("%Y-%m-%d %H:%M:%S"),
        }, self.output_dir / constants.TRAINING_METADATA_FILE)
