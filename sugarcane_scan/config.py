"""
Configuration and logging setup
Values come from the environment, optionally seeded from a .env file
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, '') else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


class Config:
    """Runtime settings for the scan service, engine and client"""

    def __init__(self, **overrides):
        self.DATABASE = os.getenv('SCAN_DATABASE', os.path.join('data', 'scans.db'))
        self.BLOB_ROOT = os.getenv('SCAN_BLOB_ROOT', os.path.join('data', 'blobs'))
        self.LEAF_MODEL_PATH = os.getenv('LEAF_MODEL_PATH', os.path.join('models', 'leaf_model.joblib'))
        self.LEAF_MODEL_LOAD_TIMEOUT = _env_float('LEAF_MODEL_LOAD_TIMEOUT', 30.0)
        self.LEAF_MODEL_RETRY_INTERVAL = _env_float('LEAF_MODEL_RETRY_INTERVAL', 60.0)
        self.MAX_CONTENT_LENGTH = _env_int('MAX_CONTENT_LENGTH', 16 * 1024 * 1024)  # 16MB
        self.SCAN_LIST_LIMIT = _env_int('SCAN_LIST_LIMIT', 50)
        self.SCAN_LIST_MAX = _env_int('SCAN_LIST_MAX', 200)
        self.SERVER_URL = os.getenv('SCAN_SERVER_URL', 'http://localhost:5000')
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
        self.LOG_FILE = os.getenv('LOG_FILE') or None

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown config option: {key}")
            setattr(self, key, value)


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None, verbose: bool = False):
    """Configure root logging with a console handler and an optional log file"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
