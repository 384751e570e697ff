import pytest
import logging
import numpy as np
import pandas as pd
from unittest.mock import MagicMock

from modules.split_engine import SplitEngine, Fold, rolling_window_split, initial_time_split, folds_to_frame
from utils.exceptions import ConfigurationError, DataValidationError, SplittingError
from utils import constants

# --- Fixtures ---

@pytest.fixture
def mock_logger():
    return MagicMock(spec=logging.Logger)

@pytest.fixture
def split_config(tmp_path):
    return {
        'data': {'time_column': 'month', 'label_column': 'label'},
        'splitting': {'train_fraction': 0.8, 'lookback': 40, 'assess': 10, 'step': 20},
        'outputs': {'base_results_dir': str(tmp_path)},
    }

@pytest.fixture
def sorted_df():
    n = 100
    return pd.DataFrame({
        'month': pd.date_range('2000-01-31', periods=n, freq='D'),
        'f1': np.linspace(0, 1, n),
        'label': [0, 1] * (n // 2),
    })

# --- Tests ---

class TestRollingWindowSplit:

    def test_reference_scenario(self):
        """19000 rows, lookback 10000, assess 4000, step 5000 -> two folds."""
        folds = rolling_window_split(19000, lookback=10000, assess=4000, step=5000)

        assert len(folds) == 2
        assert (folds[0].train_start, folds[0].train_stop) == (0, 10000)
        assert (folds[0].val_start, folds[0].val_stop) == (10000, 14000)
        assert (folds[1].train_start, folds[1].train_stop) == (5000, 15000)
        assert (folds[1].val_start, folds[1].val_stop) == (15000, 19000)
        assert [f.fold_id for f in folds] == [1, 2]

    @pytest.mark.parametrize("n,lookback,assess,step", [
        (19000, 10000, 4000, 5000),
        (100, 10, 5, 1),
        (100, 10, 5, 3),
        (100, 10, 5, 10),
        (100, 10, 5, 25),
        (57, 20, 7, 13),
        (15, 10, 5, 4),
        (14, 10, 5, 1),
        (0, 1, 1, 1),
    ])
    def test_fold_count_formula(self, n, lookback, assess, step):
        folds = rolling_window_split(n, lookback, assess, step)
        assert len(folds) == max(0, (n - lookback - assess) // step + 1)

    @pytest.mark.parametrize("step", [1, 3, 10, 40])
    def test_validation_strictly_follows_train(self, step):
        """Holds for overlapping (step < lookback) and disjoint (step >= lookback) folds."""
        n = 200
        times = pd.date_range('1990-01-31', periods=n, freq='D').to_numpy()
        folds = rolling_window_split(n, lookback=20, assess=7, step=step)

        assert folds
        for fold in folds:
            assert times[fold.val_index].min() > times[fold.train_index].max()
            assert not set(fold.train_index) & set(fold.val_index)
            assert fold.n_train == 20
            assert fold.n_val == 7

    def test_folds_advance_by_step(self):
        folds = rolling_window_split(100, lookback=30, assess=10, step=7)
        starts = [f.train_start for f in folds]
        assert np.all(np.diff(starts) == 7)

    def test_truncated_final_window_is_dropped(self):
        folds = rolling_window_split(59, lookback=30, assess=10, step=10)
        assert len(folds) == 2
        assert folds[-1].val_stop <= 59

    def test_short_dataset_gives_no_folds(self):
        assert rolling_window_split(13999, lookback=10000, assess=4000, step=5000) == []

    def test_cumulative_anchors_train_at_zero(self):
        folds = rolling_window_split(100, lookback=30, assess=10, step=20, cumulative=True)
        assert [f.train_start for f in folds] == [0, 0, 0, 0]
        assert [f.train_stop for f in folds] == [30, 50, 70, 90]
        assert all(f.val_start == f.train_stop for f in folds)

    def test_gap_separates_train_and_validation(self):
        folds = rolling_window_split(100, lookback=30, assess=10, step=20, gap=5)
        assert len(folds) == (100 - 30 - 5 - 10) // 20 + 1
        assert all(f.val_start - f.train_stop == 5 for f in folds)

    @pytest.mark.parametrize("kwargs", [
        {'lookback': 0, 'assess': 5, 'step': 1},
        {'lookback': 5, 'assess': -1, 'step': 1},
        {'lookback': 5, 'assess': 5, 'step': 0},
        {'lookback': 5, 'assess': 5, 'step': 1, 'gap': -2},
    ])
    def test_invalid_window_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            rolling_window_split(100, **kwargs)

    def test_folds_to_frame(self):
        frame = folds_to_frame(rolling_window_split(50, 20, 10, 10))
        assert list(frame.columns) == ['fold_id', 'train_start', 'train_stop', 'val_start', 'val_stop']
        assert len(frame) == 3


class TestInitialTimeSplit:

    def test_test_rows_follow_train_rows(self, sorted_df):
        train, test = initial_time_split(sorted_df, 0.75)
        assert len(train) == 75
        assert len(test) == 25
        assert test['month'].min() > train['month'].max()

    def test_degenerate_split_raises(self, sorted_df):
        with pytest.raises(SplittingError):
            initial_time_split(sorted_df.head(1), 0.5)


class TestSplitEngine:

    def test_execute_returns_train_test_and_folds(self, split_config, sorted_df, mock_logger, tmp_path):
        engine = SplitEngine(split_config, mock_logger)
        train, test, folds = engine.execute(sorted_df, "test_run")

        assert len(train) == 80
        assert len(test) == 20
        assert len(folds) == (80 - 40 - 10) // 20 + 1
        assert all(isinstance(f, Fold) for f in folds)

        saved = pd.read_parquet(tmp_path / constants.MASTER_SPLITS_DIR / constants.FOLDS_FILE)
        assert len(saved) == len(folds)

    def test_zero_folds_is_fatal(self, split_config, sorted_df, mock_logger):
        split_config['splitting']['lookback'] = 75
        engine = SplitEngine(split_config, mock_logger)

        with pytest.raises(SplittingError) as exc:
            engine.execute(sorted_df, "test_run")
        assert exc.value.key == 80
        assert exc.value.stage == "splitting"

    def test_unsorted_data_rejected(self, split_config, sorted_df, mock_logger):
        engine = SplitEngine(split_config, mock_logger)
        with pytest.raises(DataValidationError):
            engine.execute(sorted_df.iloc[::-1], "test_run")

    def test_boundary_tie_is_logged(self, split_config, mock_logger):
        # Two rows per month: fold boundaries at even indices never tie, odd ones do
        df = pd.DataFrame({
            'month': np.repeat(pd.date_range('2000-01-31', periods=50, freq='MS'), 2),
            'label': [0, 1] * 50,
        })
        split_config['splitting'].update({'lookback': 41, 'assess': 10, 'step': 20})
        engine = SplitEngine(split_config, mock_logger)
        engine.execute(df, "test_run")

        warnings = [str(c.args[0]) for c in mock_logger.warning.call_args_list]
        assert any("Fold 1" in w for w in warnings)

    def test_holdout_boundary_tie_is_logged(self, split_config, mock_logger):
        # 75 training rows cut the 38th month in half
        df = pd.DataFrame({
            'month': np.repeat(pd.date_range('2000-01-31', periods=50, freq='MS'), 2),
            'label': [0, 1] * 50,
        })
        split_config['splitting']['train_fraction'] = 0.75
        train, test, _ = SplitEngine(split_config, mock_logger).execute(df, "test_run")

        assert train['month'].iloc[-1] == test['month'].iloc[0]
        warnings = [str(c.args[0]) for c in mock_logger.warning.call_args_list]
        assert any("Train/test boundary" in w for w in warnings)

    def test_clean_holdout_boundary_is_silent(self, split_config, sorted_df, mock_logger):
        SplitEngine(split_config, mock_logger).execute(sorted_df, "test_run")
        warnings = [str(c.args[0]) for c in mock_logger.warning.call_args_list]
        assert not any("Train/test boundary" in w for w in warnings)
