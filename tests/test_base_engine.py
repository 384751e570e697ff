import pytest
from unittest.mock import Mock
from pathlib import Path
from modules.base.base_engine import BaseEngine
from utils import constants

# Concrete implementation for testing purposes
class ConcreteTestEngine(BaseEngine):
    def __init__(self, config, logger, engine_dir_name):
        self._engine_dir_name_value = engine_dir_name
        super().__init__(config, logger)

    def _get_engine_directory_name(self) -> str:
        return self._engine_dir_name_value

    def execute(self, *args, **kwargs):
        pass

@pytest.fixture
def mock_logger():
    """Provides a mock logger instance."""
    return Mock()

@pytest.fixture
def base_config(tmp_path):
    """Provides a base configuration dictionary with a temporary results directory."""
    return {
        'outputs': {
            'base_results_dir': str(tmp_path)
        }
    }

def test_output_directory_created(base_config, mock_logger, tmp_path):
    engine = ConcreteTestEngine(base_config, mock_logger, constants.MASTER_SPLITS_DIR)

    expected_dir = tmp_path / constants.MASTER_SPLITS_DIR
    assert engine.output_dir == expected_dir
    assert expected_dir.is_dir()
    mock_logger.info.assert_called_with(f"Output directory for ConcreteTestEngine: {expected_dir}")

def test_skip_dir_creation(base_config, mock_logger, tmp_path):
    base_config['outputs']['skip_dir_creation'] = True
    engine = ConcreteTestEngine(base_config, mock_logger, "ANY_ENGINE")

    assert engine.output_dir == tmp_path / "ANY_ENGINE"
    assert not engine.output_dir.exists()
    mock_logger.info.assert_not_called()

def test_default_results_dir(mock_logger, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    engine = ConcreteTestEngine({}, mock_logger, "ENGINE")
    assert engine.base_dir == Path('results')
    assert engine.excel_copy is False

def test_excel_copy_flag(base_config, mock_logger):
    base_config['outputs']['save_excel_copy'] = True
    engine = ConcreteTestEngine(base_config, mock_logger, "ENGINE")
    assert engine.excel_copy is True

def test_base_engine_is_abstract(base_config, mock_logger):
    with pytest.raises(TypeError):
        BaseEngine(base_config, mock_logger)
