import pandas as pd
import numpy as np
import logging
from pathlib import Path
from typing import List, Optional

from utils.exceptions import DataValidationError
from utils.file_io import save_dataframe, read_dataframe
from utils.error_handling import handle_engine_errors
from utils import constants

class DataManager:
    """
    Loads the firm-month panel, validates the declared columns, resolves
    missing values and sorts observations ascending by timestamp.

    The output frame is the read-only input of every downstream engine:
    its row order is the time order the splitters index into.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.data_cfg = config['data']
        self.data: Optional[pd.DataFrame] = None
        self.base_dir = Path(self.config.get('outputs', {}).get('base_results_dir', 'results'))

    @handle_engine_errors("Data Management")
    def execute(self, run_id: str, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """
        Execute complete data loading and validation workflow.

        Args:
            run_id: Unique identifier for the run.
            df: Optional in-memory frame used instead of ``data.file_path``.

        Returns:
            pd.DataFrame: The cleaned, time-sorted dataset.
        """
        self.logger.info("Starting Data Manager execution...")

        output_dir = self.base_dir / constants.DATA_INTEGRITY_DIR
        output_dir.mkdir(parents=True, exist_ok=True)

        if df is None:
            self.load_data()
        else:
            self.data = df.copy()

        self.validate_columns()
        stats_df = self.column_stats()
        self.resolve_missing()
        self.validate_labels()
        self.sort_by_time()

        excel_copy = self.config.get("outputs", {}).get("save_excel_copy", False)
        save_dataframe(stats_df, output_dir / "column_stats.parquet", excel_copy=excel_copy, index=False)
        self.logger.info(f"Data ready: {len(self.data)} observations, {len(self.feature_columns())} features.")
        return self.data

    def load_data(self) -> pd.DataFrame:
        file_path = Path(self.data_cfg['file_path'])
        if not file_path.exists():
            raise DataValidationError(f"Data file not found: {file_path}", stage="data", key=str(file_path))

        self.logger.info(f"Loading data from {file_path}")
        try:
            self.data = read_dataframe(file_path)
        except ValueError as e:
            raise DataValidationError(str(e), stage="data", key=str(file_path)) from e

        if self.data.empty:
            raise DataValidationError("Loaded dataframe is empty.", stage="data", key=str(file_path))

        self.logger.info(f"Data loaded successfully. Shape: {self.data.shape}")
        return self.data

    def feature_columns(self) -> List[str]:
        """Declared feature columns, or every column that is not a key, label or dropped column."""
        declared = self.data_cfg.get('feature_columns')
        if declared:
            return list(declared)

        excluded = set(self.data_cfg.get('drop_columns', []))
        excluded.update(c for c in [self.data_cfg.get('entity_column'),
                                    self.data_cfg['time_column'],
                                    self.data_cfg['label_column']] if c)
        return [c for c in self.data.columns if c not in excluded]

    def validate_columns(self) -> None:
        if self.data is None or self.data.empty:
            raise DataValidationError("Dataframe is empty or None.", stage="data", key=0)

        required = [self.data_cfg['time_column'], self.data_cfg['label_column']]
        if self.data_cfg.get('entity_column'):
            required.append(self.data_cfg['entity_column'])
        required.extend(self.data_cfg.get('feature_columns') or [])

        missing = [col for col in required if col not in self.data.columns]
        if missing:
            raise DataValidationError(f"Missing required columns in dataset: {missing}", stage="data")

        if not self.feature_columns():
            raise DataValidationError("No feature columns left after excluding keys and label.", stage="data")

    def column_stats(self) -> pd.DataFrame:
        """NaN/Inf counts per used column."""
        stats = []
        for col in self.feature_columns() + [self.data_cfg['label_column']]:
            series = self.data[col]
            nan_count = int(series.isna().sum())
            inf_count = int(np.isinf(series).sum()) if pd.api.types.is_float_dtype(series) else 0
            stats.append({'column': col, 'dtype': str(series.dtype),
                          'nan_count': nan_count, 'inf_count': inf_count})
            if nan_count > 0:
                self.logger.warning(f"Column '{col}' contains {nan_count} NaNs.")
            if inf_count > 0:
                self.logger.warning(f"Column '{col}' contains {inf_count} infinite values.")
        return pd.DataFrame(stats)

    def resolve_missing(self) -> None:
        """Drop (or reject) rows with missing or infinite values in used columns."""
        used = self.feature_columns() + [self.data_cfg['time_column'], self.data_cfg['label_column']]
        subset = self.data[used]
        numeric = subset.select_dtypes(include=["floating"])
        bad = subset.isna().any(axis=1) | np.isinf(numeric).any(axis=1)
        n_bad = int(bad.sum())
        if n_bad == 0:
            return

        if self.data_cfg.get('missing_policy', 'drop') == 'error':
            raise DataValidationError(f"{n_bad} rows contain missing or infinite values.", stage="data", key=n_bad)

        self.logger.warning(f"Dropping {n_bad} rows with missing or infinite values.")
        self.data = self.data.loc[~bad]
        if self.data.empty:
            raise DataValidationError("No rows left after dropping missing values.", stage="data", key=0)

    def validate_labels(self) -> None:
        label_col = self.data_cfg['label_column']
        classes = pd.unique(self.data[label_col])
        if len(classes) != 2:
            raise DataValidationError(
                f"Label column '{label_col}' must be binary, found classes {sorted(map(str, classes))}",
                stage="data", key=len(classes))

        positive = self.data_cfg.get('positive_label', 1)
        if positive not in set(classes):
            raise DataValidationError(f"Positive label {positive!r} not present in '{label_col}'",
                                      stage="data", key=positive)

    def sort_by_time(self) -> None:
        """Stable sort, so rows sharing a timestamp keep their input order."""
        time_col = self.data_cfg['time_column']
        if not self.data[time_col].is_monotonic_increasing:
            self.logger.info(f"Sorting observations by '{time_col}'.")
        self.data = self.data.sort_values(time_col, kind='mergesort').reset_index(drop=True)
