# docquery/utils/__init__.py

from .logger import setup_logger, get_logger
from .display import display_banner, display_settings, display_evaluation
from .bootstrap import load_config, save_config, ensure_directories_exist, verify_local_file
from .profiler import Profiler
