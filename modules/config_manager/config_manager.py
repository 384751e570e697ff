import json
import os
import hashlib
import sys
import logging
import jsonschema
import psutil
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from modules.model_factory import ModelFactory
from utils.exceptions import ConfigurationError
from utils import constants

class ConfigurationManager:
    """
    Manages system configuration loading, validation, and access.
    Acts as the single source of truth and safety guard for the pipeline.

    Validation happens in four passes: JSON schema, logical bounds,
    resource limits, then seed propagation.
    """

    DEFAULT_MAX_CONFIGS = 500  # Guard against accidental sample-size explosions
    SUPPORTED_METRICS = ('roc_auc', 'average_precision', 'accuracy', 'balanced_accuracy', 'f1')
    RANGE_KINDS = ('continuous', 'integer', 'categorical')

    def __init__(self, config_path: str = "config/config.json",
                 schema_path: str = "config/schema.json"):
        """
        Args:
            config_path (str): Path to the user configuration JSON.
            schema_path (str): Path to the JSON schema definition.
        """
        self.config_path = config_path
        self.schema_path = schema_path
        self.config: Dict[str, Any] = {}
        self.schema: Dict[str, Any] = {}
        self.run_id: Optional[str] = None
        self.logger = logging.getLogger("config_manager")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Main entry point. Loads config, validates schema/logic/resources
        and propagates seeds.

        Returns:
            Dict[str, Any]: The fully validated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        self.config = self._load_json(self.config_path)
        self.schema = self._load_json(self.schema_path)

        self._validate_schema()
        self._validate_logic()
        self._validate_resources()
        self._propagate_seeds()

        return self.config

    def generate_run_id(self) -> str:
        """Timestamp-based run identifier (YYYYMMDD_HHMMSS)."""
        if not self.run_id:
            self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.run_id

    def save_artifacts(self, output_dir: str) -> None:
        """
        Save configuration artifacts to the run directory for full reproducibility.

        Saves:
        1. config_used.json: The exact config object in memory.
        2. config_hash.txt: SHA256 hash for versioning.
        3. run_metadata.json: Environment details (Python version, Platform, etc.).
        """
        config_dir = Path(output_dir) / constants.CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(config_dir / constants.CONFIG_USED_FILE, 'w') as f:
            json.dump(self.config, f, indent=2)

        config_str = json.dumps(self.config, sort_keys=True)
        config_hash = hashlib.sha256(config_str.encode()).hexdigest()

        with open(config_dir / constants.CONFIG_HASH_FILE, 'w') as f:
            f.write(config_hash)

        metadata = {
            'run_id': self.run_id,
            'start_time': datetime.now().isoformat(),
            'python_version': sys.version,
            'platform': sys.platform,
            'config_hash': config_hash,
            'working_directory': os.getcwd()
        }

        with open(config_dir / constants.RUN_METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2)

    def _load_json(self, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise ConfigurationError(f"File not found: {path}", stage="configuration")
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {str(e)}", stage="configuration")

    def _validate_schema(self) -> None:
        try:
            jsonschema.validate(instance=self.config, schema=self.schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Schema validation failed: {e.message}", stage="configuration")

    def _validate_logic(self) -> None:
        """Business rules and bounds that the schema cannot express."""
        # --- Data Section ---
        data = self.config.get('data', {})
        for key in ['file_path', 'time_column', 'label_column']:
            if not data.get(key):
                raise ConfigurationError(f"Data '{key}' must be specified and non-empty.", stage="configuration")

        missing_policy = data.get('missing_policy', 'drop')
        if missing_policy not in ('drop', 'error'):
            raise ConfigurationError(f"data.missing_policy must be 'drop' or 'error', got {missing_policy!r}",
                                     stage="configuration")

        # --- Splitting Section ---
        split = self.config.get('splitting', {})
        train_fraction = split.get('train_fraction', 0.75)
        if not (0.0 < train_fraction < 1.0):
            raise ConfigurationError(f"train_fraction must be between 0 and 1 (exclusive), got {train_fraction}",
                                     stage="configuration")

        for key in ['lookback', 'assess', 'step']:
            value = split.get(key)
            if value is None or value <= 0:
                raise ConfigurationError(f"splitting.{key} must be a positive integer, got {value}",
                                         stage="configuration")
        if split.get('gap', 0) < 0:
            raise ConfigurationError(f"splitting.gap must be >= 0, got {split.get('gap')}", stage="configuration")
        if split.get('seed', 0) < 0:
            raise ConfigurationError("Splitting seed must be non-negative.", stage="configuration")

        # --- HPO Section ---
        hpo = self.config.get('hyperparameters', {})
        if hpo.get('enabled', True):
            ranges = hpo.get('ranges')
            if not ranges:
                raise ConfigurationError("Hyperparameter ranges cannot be empty when HPO is enabled.",
                                         stage="configuration")
            size = hpo.get('size', constants.DEFAULT_SAMPLE_SIZE)
            if size < 1:
                raise ConfigurationError(f"hyperparameters.size must be >= 1, got {size}", stage="configuration")
            metric = hpo.get('metric', constants.DEFAULT_METRIC)
            if metric not in self.SUPPORTED_METRICS:
                raise ConfigurationError(f"Unsupported metric '{metric}'. Available: {list(self.SUPPORTED_METRICS)}",
                                         stage="configuration")
            for name, entry in ranges.items():
                kind = entry.get('kind')
                if kind not in self.RANGE_KINDS:
                    raise ConfigurationError(f"Range '{name}' has unknown kind {kind!r}", stage="configuration", key=name)

        # --- Model Section ---
        model_name = self.config.get('model', {}).get('name', constants.DEFAULT_MODEL)
        if model_name not in ModelFactory.get_available_models():
            raise ConfigurationError(
                f"Unknown model.name '{model_name}'. Available: {ModelFactory.get_available_models()}",
                stage="configuration", key=model_name)
        if hpo.get('enabled', True):
            accepted = set(ModelFactory.accepted_params(model_name))
            for name in hpo.get('ranges', {}):
                if name not in accepted:
                    raise ConfigurationError(f"Range '{name}' is not a parameter of {model_name}",
                                             stage="configuration", key=name)

        # --- Evaluation Section ---
        threshold = self.config.get('evaluation', {}).get('threshold', 0.5)
        if not (0.0 < threshold < 1.0):
            raise ConfigurationError(f"evaluation.threshold must be in (0, 1), got {threshold}", stage="configuration")

        # --- Execution Section ---
        execution = self.config.get('execution', {})
        if 'n_jobs' in execution and execution['n_jobs'] is not None:
            n_jobs = execution['n_jobs']
            if n_jobs == 0 or n_jobs < -1:
                raise ConfigurationError(
                    f"execution.n_jobs must be -1 (all cores), a positive integer or null, got {n_jobs}",
                    stage="configuration")

    def _validate_resources(self) -> None:
        """
        Validate the tuning workload against configured limits and the host.
        """
        resources = self.config.get('resources', {})
        hpo = self.config.get('hyperparameters', {})

        if hpo.get('enabled', True):
            size = hpo.get('size', constants.DEFAULT_SAMPLE_SIZE)
            max_configs = resources.get('max_configs', self.DEFAULT_MAX_CONFIGS)
            if size > max_configs:
                raise ConfigurationError(
                    f"Sample size ({size}) exceeds safety limit ({max_configs}). "
                    f"Reduce 'hyperparameters.size' or increase 'resources.max_configs'.",
                    stage="configuration", key=size
                )
            logging.info(f"Hyperparameter sample size validated: {size} configurations (Limit: {max_configs})")

        n_jobs = self.config.get('execution', {}).get('n_jobs')
        cpu_count = psutil.cpu_count(logical=True) or 1
        if n_jobs is not None and n_jobs > cpu_count:
            logging.warning(
                f"Configured n_jobs ({n_jobs}) exceeds available processing units ({cpu_count}). "
                "Workers will be oversubscribed."
            )

    def _propagate_seeds(self) -> None:
        """
        Propagate the master seed to internal components.
        The sampler keeps its own explicit seed when one is configured.
        """
        master_seed = self.config['splitting'].get('seed', constants.DEFAULT_SAMPLER_SEED)
        sampler_seed = self.config.get('hyperparameters', {}).get('seed', master_seed)

        self.config['_internal_seeds'] = {
            'sampler': sampler_seed,
            'model': master_seed + 2000,
        }
        logging.debug(f"Seeds propagated from master ({master_seed}): {self.config['_internal_seeds']}")
