# docquery/utils/bootstrap.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: bootstrap.py

Configuration management and directory initialization for the command-line
runner. Settings live in a JSON file merged over DEFAULT_CONFIG; a default
file is written when none exists.
"""

import os
import json
from pathlib import Path
from typing import Dict, Optional, Any

# Alias used for type hints so this module never imports the logging setup
LoggerType = Any

DEFAULT_CONFIG = {
  "num_features": 64,
  "num_classes": 2,
  "noise": 0.1,
  "chunk_size": 100,
  "num_chunks": 150,
  "shared_passes": 10,
  "shared_tolerance": 1e-4,
  "feature_selection": [],
  "solver": {
    "max_iterations": 100,
    "tolerance": 1e-6,
    "damping": 1.0
  },
  "log_dir": "logs",
  "models_dir": "models",
  "show_progress": True
}


def load_config(config_file: str = 'config.json', logger: Optional[LoggerType] = None) -> Dict:
    """
    Load configuration from JSON file or create default if not found.

    Args:
        config_file: Path to the configuration file
        logger: Logger instance for status messages

    Returns:
        Dict containing merged configuration (default + loaded values)
    """
    if logger is None:
        from docquery.utils.logger import get_logger
        logger = get_logger(name="bootstrap")

    if not os.path.exists(config_file):
        logger.warning(f"[!] Config file not found: {config_file}. Creating default...")
        return _create_default_config(config_file, logger)

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
        logger.info(f"[+] Loaded configuration from {config_file}")
    except (OSError, ValueError) as e:
        logger.error(f"[X] Failed to load config: {e}")
        return _create_default_config(config_file, logger)

    merged = {**DEFAULT_CONFIG, **config}
    merged["solver"] = {**DEFAULT_CONFIG["solver"], **config.get("solver", {})}
    return merged


def save_config(config: Dict, config_file: str = 'config.json', logger: Optional[LoggerType] = None) -> None:
    """
    Save configuration dictionary to JSON file.

    Args:
        config: Configuration dictionary to save
        config_file: Path to save the configuration file
        logger: Logger instance for status messages
    """
    if logger is None:
        from docquery.utils.logger import get_logger
        logger = get_logger(name="bootstrap")

    try:
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)
        logger.info(f"[+] Configuration saved to {config_file}")
    except OSError as e:
        logger.error(f"[X] Error saving config: {e}")


def _create_default_config(config_file: str = 'config.json', logger: Optional[LoggerType] = None) -> Dict:
    if logger is None:
        from docquery.utils.logger import get_logger
        logger = get_logger(name="bootstrap")

    save_config(DEFAULT_CONFIG, config_file, logger=logger)
    logger.info(f"[+] Default configuration created at {config_file}")
    return {**DEFAULT_CONFIG, "solver": dict(DEFAULT_CONFIG["solver"])}


def ensure_directories_exist(config: Dict, logger: Optional[LoggerType] = None) -> None:
    """
    Create the log and model directories named in the configuration.

    Args:
        config: Configuration dictionary
        logger: Logger instance for status messages
    """
    if logger is None:
        from docquery.utils.logger import get_logger
        logger = get_logger(name="bootstrap")

    for folder in [config["log_dir"], config["models_dir"]]:
        Path(folder).mkdir(parents=True, exist_ok=True)
    logger.info("[+] Ensured all required directories exist.")


def verify_local_file(path: str, description: str = "File", logger: Optional[LoggerType] = None) -> None:
    """
    Verify that a required file exists.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    if logger is None:
        from docquery.utils.logger import get_logger
        logger = get_logger(name="bootstrap")

    if not os.path.exists(path):
        logger.error(f"[X] {description} missing: {path}")
        raise FileNotFoundError(f"{description} missing: {path}")
    logger.info(f"[+] {description} found: {path}")
