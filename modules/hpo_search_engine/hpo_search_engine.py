import gc
import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, cpu_count

from modules.base.base_engine import BaseEngine
from modules.evaluation_engine.metrics import MetricKind, score
from modules.hpo_search_engine.parameter_space import (
    Configuration,
    ParameterSpace,
    configurations_to_frame,
)
from modules.model_factory import ModelFactory, predict_scores, split_feature_types
from modules.split_engine import Fold
from utils.error_handling import handle_engine_errors
from utils.exceptions import ConfigurationError, RelVolMLException, SelectionError
from utils.file_io import save_dataframe, save_json
from utils import constants


@dataclass(frozen=True)
class MetricRecord:
    """Score of one configuration on one fold. ``value`` is NaN when the pair failed."""
    fold_id: int
    config_id: int
    metric: str
    value: float
    status: str = constants.STATUS_SUCCESS
    error: Optional[str] = None
    fit_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return self.status != constants.STATUS_SUCCESS


@dataclass
class SelectionResult:
    config_id: int
    metric: str
    mean_score: float
    summary: pd.DataFrame
    records: pd.DataFrame
    configuration: Optional[Configuration] = None

    def show_best(self, n: int = 5) -> pd.DataFrame:
        return self.summary.head(n)

    def to_dict(self) -> Dict[str, Any]:
        best = self.summary.loc[self.summary['config_id'] == self.config_id]
        return {
            'config_id': self.config_id,
            'metric': self.metric,
            'mean_score': self.mean_score,
            'std_err': float(best['std_err'].iloc[0]) if not best.empty else float('nan'),
            'n_success': int(best['n_success'].iloc[0]) if not best.empty else 0,
            'params': self.configuration.as_dict() if self.configuration else {},
        }


def records_to_frame(records: Sequence[MetricRecord]) -> pd.DataFrame:
    columns = ['fold_id', 'config_id', 'metric', 'value', 'status', 'error', 'fit_seconds']
    return pd.DataFrame([asdict(r) for r in records], columns=columns)


def resolve_n_jobs(n_jobs: Optional[int] = None) -> int:
    """Default pool size is every available processing unit but one."""
    available = cpu_count()
    if n_jobs is None:
        return max(1, available - 1)
    if n_jobs == -1:
        return available
    return max(1, int(n_jobs))


def evaluate_pair(model_name: str, fixed_params: Dict[str, Any], X: pd.DataFrame, y: pd.Series,
                  fold: Fold, config: Configuration, metric: MetricKind,
                  categorical: Sequence[str], numeric: Sequence[str],
                  positive_label: Any = 1, threshold: float = 0.5) -> MetricRecord:
    """
    Fit on the fold's train slice, score on its validation slice.

    Runs inside a pool worker. Any failure becomes a failed record so that
    sibling pairs keep running.
    """
    start = time.time()
    try:
        model = ModelFactory.create(model_name, {**fixed_params, **config.as_dict()},
                                    categorical_features=categorical, numeric_features=numeric)
        model.fit(X.iloc[fold.train_start:fold.train_stop], y.iloc[fold.train_start:fold.train_stop])
        scores = predict_scores(model, X.iloc[fold.val_start:fold.val_stop], positive_label)
        value = score(metric, y.iloc[fold.val_start:fold.val_stop], scores,
                      positive_label=positive_label, threshold=threshold)
        return MetricRecord(fold.fold_id, config.config_id, metric.value, value,
                            fit_seconds=time.time() - start)
    except Exception as e:
        return MetricRecord(fold.fold_id, config.config_id, metric.value, float('nan'),
                            status=constants.STATUS_FAILED, error=f"{type(e).__name__}: {e}",
                            fit_seconds=time.time() - start)


def select_best(records: Sequence[MetricRecord], metric,
                configs: Optional[Sequence[Configuration]] = None) -> SelectionResult:
    """
    Pick the configuration with the highest mean score across folds.

    Failed records are left out of the mean; configurations with no
    successful record are excluded. Ties go to the lowest config id.
    """
    metric = MetricKind.parse(metric)
    table = records_to_frame(records)
    table = table.loc[table['metric'] == metric.value]
    if table.empty:
        raise SelectionError(f"No records for metric '{metric.value}'", stage="selection", key=metric.value)

    ok = table['status'] == constants.STATUS_SUCCESS
    grouped = table.loc[ok].groupby('config_id')['value']
    summary = pd.DataFrame({
        'mean': grouped.mean(),
        'std': grouped.std(ddof=1),
        'n_success': grouped.size(),
    })
    summary = summary.reindex(sorted(table['config_id'].unique()))
    summary['n_success'] = summary['n_success'].fillna(0).astype(int)
    summary['n_failed'] = table.loc[~ok].groupby('config_id').size().reindex(summary.index).fillna(0).astype(int)
    summary['std_err'] = summary['std'] / np.sqrt(summary['n_success'].where(summary['n_success'] > 0))
    summary.index.name = 'config_id'
    summary = summary.reset_index()

    if configs:
        params = configurations_to_frame(list(configs))
        summary = summary.merge(params, on='config_id', how='left')

    # Highest mean first, lowest id wins ties, excluded configs last
    summary = summary.sort_values(['mean', 'config_id'], ascending=[False, True],
                                  na_position='last', kind='mergesort').reset_index(drop=True)

    usable = summary.loc[summary['n_success'] > 0]
    if usable.empty:
        raise SelectionError("Every configuration failed on every fold; tuning produced no usable result.",
                             stage="selection", key=int(table['config_id'].nunique()))

    best_id = int(usable.iloc[0]['config_id'])
    best_config = None
    if configs:
        best_config = next(c for c in configs if c.config_id == best_id)

    return SelectionResult(
        config_id=best_id,
        metric=metric.value,
        mean_score=float(usable.iloc[0]['mean']),
        summary=summary,
        records=table.reset_index(drop=True),
        configuration=best_config,
    )


class HPOSearchEngine(BaseEngine):
    """
    Hyperparameter search over rolling time folds.

    Samples a space-filling set of configurations, scores every
    (fold, configuration) pair on a scoped worker pool and selects the
    configuration with the best mean validation score.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.hpo_config = config.get('hyperparameters', {})
        self.data_cfg = config.get('data', {})
        self.model_cfg = config.get('model', {})
        self.model_name = self.model_cfg.get('name', constants.DEFAULT_MODEL)
        if self.model_name not in ModelFactory.get_available_models():
            raise ConfigurationError(
                f"Unknown model '{self.model_name}'. Available: {ModelFactory.get_available_models()}",
                stage="configuration", key=self.model_name)
        self.fixed_params = dict(self.model_cfg.get('fixed_params', {}))
        model_seed = config.get('_internal_seeds', {}).get('model')
        if model_seed is not None:
            self.fixed_params.setdefault('random_state', model_seed)

        execution = config.get('execution', {})
        self.n_jobs = resolve_n_jobs(execution.get('n_jobs'))
        self.backend = execution.get('backend', 'loky')
        self.verbose = execution.get('verbose', 0)
        self.positive_label = self.data_cfg.get('positive_label', 1)
        self.threshold = config.get('evaluation', {}).get('threshold', 0.5)

    def _get_engine_directory_name(self) -> str:
        return constants.HPO_SEARCH_DIR

    @handle_engine_errors("Hyperparameter Search")
    def execute(self, train_df: pd.DataFrame, folds: List[Fold], run_id: str) -> SelectionResult:
        """
        Sample, evaluate and select.

        Args:
            train_df: Time-sorted training portion (the frame the folds index into).
            folds: Rolling folds over ``train_df``.
            run_id: Unique identifier for this execution.
        """
        metric = MetricKind.parse(self.hpo_config.get('metric', constants.DEFAULT_METRIC))
        X, y = self.prepare_xy(train_df)

        if not self.hpo_config.get('enabled', True):
            self.logger.info("HPO disabled. Using the model's default parameters.")
            return self._default_selection(metric)

        self.logger.info("Starting Hyperparameter Optimization (HPO)...")
        configs = self.sample(X)
        save_dataframe(configurations_to_frame(configs), self.output_dir / constants.CONFIGURATIONS_FILE,
                       excel_copy=self.excel_copy, index=False)

        records = self.evaluate(X, y, folds, configs, metric)
        save_dataframe(records_to_frame(records), self.output_dir / constants.METRIC_RECORDS_FILE,
                       excel_copy=self.excel_copy, index=False)

        result = select_best(records, metric, configs)
        save_dataframe(result.summary, self.output_dir / constants.SELECTION_SUMMARY_FILE,
                       excel_copy=self.excel_copy, index=False)
        save_json({**result.to_dict(), 'model': self.model_name, 'fixed_params': self.fixed_params,
                   'run_id': run_id},
                  self.output_dir / constants.BEST_CONFIGURATION_FILE)

        self.logger.info(f"Best Config Found: {result.configuration.label} "
                         f"(mean {metric.value}: {result.mean_score:.4f})")
        return result

    def prepare_xy(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        label_col = self.data_cfg['label_column']
        features = self.data_cfg.get('feature_columns')
        if not features:
            excluded = set(self.data_cfg.get('drop_columns', []))
            excluded.update(c for c in [self.data_cfg.get('entity_column'),
                                        self.data_cfg.get('time_column'), label_col] if c)
            features = [c for c in df.columns if c not in excluded]
        return df[list(features)], df[label_col]

    def feature_types(self, X: pd.DataFrame):
        return split_feature_types(X, self.data_cfg.get('categorical_columns'))

    def sample(self, X: pd.DataFrame) -> List[Configuration]:
        """Declare the space, resolve it against the training features, sample."""
        space = ParameterSpace.from_config(self.hpo_config.get('ranges', {}))
        self._check_range_names(space)
        space = space.resolve(n_features=X.shape[1])

        size = self.hpo_config.get('size', constants.DEFAULT_SAMPLE_SIZE)
        seed = self.config.get('_internal_seeds', {}).get('sampler', constants.DEFAULT_SAMPLER_SEED)
        configs = space.sample(size, seed)
        self.logger.info(f"Sampled {len(configs)} configurations over {space.names} (seed={seed}).")
        return configs

    def evaluate(self, X: pd.DataFrame, y: pd.Series, folds: Sequence[Fold],
                 configs: Sequence[Configuration], metric=constants.DEFAULT_METRIC) -> List[MetricRecord]:
        """
        Score every (fold, configuration) pair.

        Returns exactly ``len(folds) * len(configs)`` records ordered by
        (fold id, config id). Pair failures come back as failed records.
        """
        metric = MetricKind.parse(metric)
        if not folds:
            raise ConfigurationError("Cannot evaluate with zero folds.", stage="evaluation", key=0)
        if not configs:
            raise ConfigurationError("Cannot evaluate with zero configurations.", stage="evaluation", key=0)

        categorical, numeric = self.feature_types(X)
        pairs = [(fold, cfg) for fold in folds for cfg in configs]
        self.logger.info(f"Evaluating {len(folds)} folds x {len(configs)} configurations "
                         f"= {len(pairs)} fits on {self.n_jobs} workers ({self.backend}).")

        start = time.time()
        # The pool lives only inside this block and is released on every exit path
        with Parallel(n_jobs=self.n_jobs, backend=self.backend, verbose=self.verbose) as parallel:
            records = parallel(
                delayed(evaluate_pair)(self.model_name, self.fixed_params, X, y, fold, cfg, metric,
                                       categorical, numeric, self.positive_label, self.threshold)
                for fold, cfg in pairs
            )
        gc.collect()

        self._check_complete(records, folds, configs)
        failed = [r for r in records if r.failed]
        for r in failed:
            self.logger.warning(f"Fold {r.fold_id} / config {r.config_id} failed: {r.error}")
        self.logger.info(f"Grid evaluation finished in {time.time() - start:.1f}s: "
                         f"{len(records) - len(failed)} succeeded, {len(failed)} failed.")
        return sorted(records, key=lambda r: (r.fold_id, r.config_id))

    def _check_range_names(self, space: ParameterSpace) -> None:
        """Every tuned name must be a constructor argument of the learner."""
        accepted = set(ModelFactory.accepted_params(self.model_name))
        for name in space.names:
            if name not in accepted:
                raise ConfigurationError(f"'{name}' is not a parameter of {self.model_name}",
                                         stage="sampler", key=name)

    @staticmethod
    def _check_complete(records: Sequence[MetricRecord], folds: Sequence[Fold],
                        configs: Sequence[Configuration]) -> None:
        expected = {(f.fold_id, c.config_id) for f in folds for c in configs}
        seen = [(r.fold_id, r.config_id) for r in records]
        if len(seen) != len(expected) or set(seen) != expected:
            raise RelVolMLException(
                f"Grid evaluation returned {len(seen)} records for {len(expected)} pairs.",
                stage="evaluation", key=len(seen))

    def _default_selection(self, metric: MetricKind) -> SelectionResult:
        default = Configuration(config_id=1, params=tuple(self.model_cfg.get('default_params', {}).items()))
        summary = pd.DataFrame([{'config_id': 1, 'mean': np.nan, 'std': np.nan, 'n_success': 0,
                                 'n_failed': 0, 'std_err': np.nan}])
        return SelectionResult(config_id=1, metric=metric.value, mean_score=float('nan'),
                               summary=summary, records=records_to_frame([]), configuration=default)
