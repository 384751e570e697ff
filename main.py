#!/usr/bin/env python
"""
Relative-Volatility Classifier - Main Entry Point
Orchestrates leakage-safe model selection and holdout evaluation for the
high-relative-volatility firm-month classifier.
"""
import sys
import logging
import argparse
import traceback
import random
import os
from pathlib import Path

import numpy as np

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from modules.config_manager import ConfigurationManager
from modules.logging_config import LoggingConfigurator
from modules.data_manager import DataManager
from modules.tuning import TuningController
from utils.exceptions import RelVolMLException


def parse_arguments(argv=None):
    """
    Parse command-line arguments for configurable pipeline execution.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Relative-Volatility Classifier - Rolling-Window Hyperparameter Selection",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--config", type=str, default="config/config.json",
                        help="Path to the configuration JSON file")
    parser.add_argument("--schema", type=str, default="config/schema.json",
                        help="Path to the configuration JSON schema")
    parser.add_argument("--run-id", type=str, default=None,
                        help="Optional run identifier (defaults to timestamp if not provided)")
    parser.add_argument("--n-jobs", type=int, default=None,
                        help="Override execution.n_jobs (default: available processing units - 1)")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose (DEBUG) logging")
    parser.add_argument("--dry-run", action="store_true",
                        help="Validate configuration and setup without running the pipeline")
    return parser.parse_args(argv)


def setup_global_determinism(config: dict, logger: logging.Logger):
    seed = config.get('splitting', {}).get('seed', 234)
    logger.info(f"Setting Global Deterministic Seed: {seed}")
    random.seed(seed)
    np.random.seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)


def setup_run_directory(config: dict, run_id: str, logger: logging.Logger) -> Path:
    base_results_dir = config.get('outputs', {}).get('base_results_dir', 'results')
    run_dir = Path(base_results_dir, run_id).absolute()
    run_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Created run directory: {run_dir}")
    return run_dir


def main(argv=None):
    """
    Returns:
        int: Exit code (0 for success, 1 for errors, 130 on interrupt)
    """
    logger = None

    try:
        args = parse_arguments(argv)

        print("\n" + "=" * 80)
        print("    RELATIVE VOLATILITY CLASSIFIER - TIME-ORDERED MODEL SELECTION")
        print("=" * 80 + "\n")

        # ---------------------------------------------------------------
        # PHASE 0: INITIALIZATION & VALIDATION
        # ---------------------------------------------------------------
        config_manager = ConfigurationManager(config_path=args.config, schema_path=args.schema)
        config = config_manager.load_and_validate()

        if args.verbose:
            config.setdefault('logging', {})['level'] = 'DEBUG'
        if args.n_jobs is not None:
            config.setdefault('execution', {})['n_jobs'] = args.n_jobs

        logging_configurator = LoggingConfigurator(config)
        logging_configurator.setup()
        logger = logging_configurator.get_logger('pipeline')
        logger.info(f"Configuration loaded from: {args.config}")

        if args.run_id:
            config_manager.run_id = args.run_id
        run_id = config_manager.generate_run_id()
        run_dir = setup_run_directory(config, run_id, logger)
        config['outputs']['base_results_dir'] = str(run_dir)

        config_manager.save_artifacts(str(run_dir))
        setup_global_determinism(config, logger)

        if args.dry_run:
            logger.info("Dry run mode: validation complete. Exiting without running pipeline.")
            print("\n[SUCCESS] Configuration validated successfully.")
            return 0

        # ---------------------------------------------------------------
        # PHASE 1: DATA INGESTION
        # ---------------------------------------------------------------
        logger.info("\n" + "=" * 60)
        logger.info("PHASE 1: DATA INGESTION")
        logger.info("=" * 60)

        data = DataManager(config, logger).execute(run_id)

        # ---------------------------------------------------------------
        # PHASE 2: SPLIT, TUNE, SELECT, REFIT, EVALUATE
        # ---------------------------------------------------------------
        logger.info("\n" + "=" * 60)
        logger.info("PHASE 2: TIME-ORDERED MODEL SELECTION")
        logger.info("=" * 60)

        result = TuningController(config, logger).run(data)

        logger.info("\n" + "-" * 60)
        logger.info("PIPELINE COMPLETED SUCCESSFULLY")
        logger.info(f"Run ID: {run_id}")
        logger.info(f"Selected configuration: {result.selection.config_id} "
                    f"(mean {result.selection.metric}: {result.selection.mean_score:.4f})")
        logger.info(f"Test {result.final_metrics.metric}: {result.final_metrics.value:.4f}")
        logger.info(f"Output Directory: {run_dir}")
        logger.info("-" * 60 + "\n")

        print(f"\n[SUCCESS] Pipeline completed. Results saved to: {run_dir}")
        return 0

    except RelVolMLException as e:
        msg = f"Pipeline Error: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1

    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Pipeline interrupted by user.")
        if logger:
            logger.warning("Pipeline interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        msg = f"Unexpected Error: {str(e)}"
        print(f"\n[CRITICAL] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
