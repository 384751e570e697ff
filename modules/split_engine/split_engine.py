"""
SplitEngine for the relative-volatility model selection pipeline.

This module turns one chronologically ordered dataset into:

1. an initial train/test split, where every test row follows every
   training row, and
2. a sequence of rolling-window folds over the training portion, used to
   score hyperparameter configurations without looking into the future.

Folds are expressed as half-open index intervals over the sorted frame;
they hold no data of their own and can be recomputed from the window
parameters at any time.
"""
import logging
from dataclasses import dataclass, asdict
from typing import List, Tuple

import numpy as np
import pandas as pd

from modules.base.base_engine import BaseEngine
from utils.error_handling import handle_engine_errors
from utils.exceptions import ConfigurationError, DataValidationError, SplittingError
from utils.file_io import save_dataframe
from utils import constants


@dataclass(frozen=True)
class Fold:
    """One (train, validation) pair of half-open index ranges."""
    fold_id: int
    train_start: int
    train_stop: int
    val_start: int
    val_stop: int

    @property
    def train_index(self) -> np.ndarray:
        return np.arange(self.train_start, self.train_stop)

    @property
    def val_index(self) -> np.ndarray:
        return np.arange(self.val_start, self.val_stop)

    @property
    def n_train(self) -> int:
        return self.train_stop - self.train_start

    @property
    def n_val(self) -> int:
        return self.val_stop - self.val_start

    def to_dict(self) -> dict:
        return asdict(self)


def rolling_window_split(n_obs: int, lookback: int, assess: int, step: int,
                         gap: int = 0, cumulative: bool = False) -> List[Fold]:
    """
    Produce rolling-window folds over ``n_obs`` time-sorted observations.

    Fold k trains on ``[start, start + lookback)`` and validates on
    ``[start + lookback + gap, start + lookback + gap + assess)`` with
    ``start = k * step``. With ``cumulative=True`` every train range is
    anchored at 0 instead (expanding window). Windows that would run past
    the end of the data are dropped, so the number of folds is
    ``max(0, (n_obs - lookback - gap - assess) // step + 1)``.

    Returns an empty list when the data cannot hold a single window.
    """
    for name, value in (('lookback', lookback), ('assess', assess), ('step', step)):
        if int(value) != value or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got {value}", stage="splitting", key=name)
    if int(gap) != gap or gap < 0:
        raise ConfigurationError(f"gap must be a non-negative integer, got {gap}", stage="splitting", key='gap')
    if n_obs < 0:
        raise ConfigurationError(f"n_obs must be >= 0, got {n_obs}", stage="splitting", key='n_obs')

    folds = []
    start = 0
    while start + lookback + gap + assess <= n_obs:
        train_stop = start + lookback
        val_start = train_stop + gap
        folds.append(Fold(
            fold_id=len(folds) + 1,
            train_start=0 if cumulative else start,
            train_stop=train_stop,
            val_start=val_start,
            val_stop=val_start + assess,
        ))
        start += step
    return folds


def initial_time_split(df: pd.DataFrame, train_fraction: float) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """First ``floor(n * train_fraction)`` rows train, the remainder test."""
    if not (0.0 < train_fraction < 1.0):
        raise ConfigurationError(f"train_fraction must be in (0, 1), got {train_fraction}",
                                 stage="splitting", key='train_fraction')
    n_train = int(np.floor(len(df) * train_fraction))
    if n_train == 0 or n_train == len(df):
        raise SplittingError(f"Initial split of {len(df)} rows leaves an empty train or test set.",
                             stage="splitting", key=len(df))
    train = df.iloc[:n_train].reset_index(drop=True)
    test = df.iloc[n_train:].reset_index(drop=True)
    return train, test


def folds_to_frame(folds: List[Fold]) -> pd.DataFrame:
    columns = ['fold_id', 'train_start', 'train_stop', 'val_start', 'val_stop']
    return pd.DataFrame([f.to_dict() for f in folds], columns=columns)


class SplitEngine(BaseEngine):
    """
    Splits the time-sorted dataset into a train/test pair and rolling folds.

    The train/test boundary and every fold boundary are index positions in
    the sorted frame, so no validation or test observation can precede an
    observation used to fit the model that scores it.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.split_cfg = config.get('splitting', {})
        self.time_col = config.get('data', {}).get('time_column')

    def _get_engine_directory_name(self) -> str:
        return constants.MASTER_SPLITS_DIR

    @handle_engine_errors("Data Splitting")
    def execute(self, df: pd.DataFrame, run_id: str) -> Tuple[pd.DataFrame, pd.DataFrame, List[Fold]]:
        """
        Execute the splitting workflow.

        Returns:
            train, test DataFrames and the rolling folds over ``train``.
        """
        self.logger.info("Starting Split Engine execution...")
        self._check_sorted(df)

        train, test = initial_time_split(df, self.split_cfg.get('train_fraction', 0.75))
        self.logger.info(f"Initial time split: Train={len(train)}, Test={len(test)}")
        self._warn_on_holdout_tie(train, test)

        folds = self.make_folds(train)

        save_dataframe(folds_to_frame(folds), self.output_dir / constants.FOLDS_FILE,
                       excel_copy=self.excel_copy, index=False)
        return train, test, folds

    def make_folds(self, train: pd.DataFrame) -> List[Fold]:
        lookback = self.split_cfg['lookback']
        assess = self.split_cfg['assess']
        gap = self.split_cfg.get('gap', 0)

        folds = rolling_window_split(
            len(train),
            lookback=lookback,
            assess=assess,
            step=self.split_cfg['step'],
            gap=gap,
            cumulative=self.split_cfg.get('cumulative', False),
        )
        if not folds:
            raise SplittingError(
                f"Training set of {len(train)} rows is shorter than one window "
                f"(lookback={lookback} + gap={gap} + assess={assess}); no folds produced.",
                stage="splitting", key=len(train))

        self._warn_on_boundary_ties(train, folds)
        for fold in folds:
            self.logger.info(
                f"Fold {fold.fold_id}: train [{fold.train_start}, {fold.train_stop}) "
                f"val [{fold.val_start}, {fold.val_stop})")
        return folds

    def _check_sorted(self, df: pd.DataFrame) -> None:
        if self.time_col and self.time_col in df.columns and not df[self.time_col].is_monotonic_increasing:
            raise DataValidationError(f"Data must be sorted ascending by '{self.time_col}' before splitting.",
                                      stage="splitting", key=len(df))

    def _warn_on_holdout_tie(self, train: pd.DataFrame, test: pd.DataFrame) -> None:
        if not self.time_col or self.time_col not in train.columns:
            return
        last_train, first_test = train[self.time_col].iloc[-1], test[self.time_col].iloc[0]
        if last_train >= first_test:
            self.logger.warning(
                f"Train/test boundary: last train timestamp equals first test timestamp ({first_test}). "
                f"Rows from the same period appear in both the training and the test set.")

    def _warn_on_boundary_ties(self, df: pd.DataFrame, folds: List[Fold]) -> None:
        """Panel rows sharing a timestamp can straddle a fold boundary."""
        if not self.time_col or self.time_col not in df.columns:
            return
        times = df[self.time_col].to_numpy()
        for fold in folds:
            if times[fold.train_stop - 1] >= times[fold.val_start]:
                self.logger.warning(
                    f"Fold {fold.fold_id}: last train timestamp equals first validation timestamp "
                    f"({times[fold.val_start]}). Rows from the same period appear on both sides.")
