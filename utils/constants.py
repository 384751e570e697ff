# utils/constants.py

# --- Top-Level Result Directories ---
# Sequentially numbered for proper sorting with clear, self-explanatory names

CONFIG_DIR = "01_RunConfiguration"              # Run config, metadata, seeds
DATA_INTEGRITY_DIR = "02_DataQualityChecks"     # Column stats, cleaned data
MASTER_SPLITS_DIR = "03_TimeOrderedSplits"      # Train/test split and rolling folds
HPO_SEARCH_DIR = "04_HyperparameterSearch"      # Configurations, metric records, selection
FINAL_MODEL_DIR = "05_TrainedModel"             # Refit model on the full training set
EVALUATION_DIR = "06_HoldoutEvaluation"         # Test-set metrics and confusion matrix

# --- File Names ---
CONFIG_USED_FILE = "config_used.json"
CONFIG_HASH_FILE = "config_hash.txt"
RUN_METADATA_FILE = "run_metadata.json"
FOLDS_FILE = "folds.parquet"
CONFIGURATIONS_FILE = "configurations.parquet"
METRIC_RECORDS_FILE = "metric_records.parquet"
SELECTION_SUMMARY_FILE = "selection_summary.parquet"
BEST_CONFIGURATION_FILE = "best_configuration.json"
FINAL_MODEL_FILE = "final_model.pkl"
TRAINING_METADATA_FILE = "training_metadata.json"
FINAL_METRICS_FILE = "final_metrics.json"
CONFUSION_MATRIX_FILE = "confusion_matrix.parquet"
TEST_PREDICTIONS_FILE = "test_predictions.parquet"

# --- Record Status ---
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

# --- Defaults ---
DEFAULT_SAMPLER_SEED = 234
DEFAULT_SAMPLE_SIZE = 20
DEFAULT_METRIC = "roc_auc"
DEFAULT_MODEL = "GradientBoostingClassifier"

# Placeholder upper bound resolved against the training feature count.
N_FEATURES_TOKEN = "n_features"
