import os
import sys
from urllib.parse import urlparse

from dotenv import load_dotenv

from enums.runtime_environment import RuntimeEnvironment
from enums.storage_backend import StorageBackend

# Load .env but don't override existing environment variables
# This allows test scripts to set RUNTIME_ENVIRONMENT=TEST before import
load_dotenv(".env", override=False)


def _fail(setting: str, reason: str, expected: str):
    print(f"\n ERROR: Invalid {setting} configuration\n", file=sys.stderr)
    print(f"Reason: {reason}", file=sys.stderr)
    print(f"Expected: {expected}", file=sys.stderr)
    print(f"Current value: {os.environ.get(setting, '(not set)')}\n", file=sys.stderr)
    sys.exit(1)


def _positive_int(setting: str, default: str) -> int:
    try:
        value = int(os.environ.get(setting, default))
        if value <= 0:
            raise ValueError(f"{setting} must be positive (got: {value})")
        return value
    except ValueError as e:
        _fail(setting, str(e), "Positive integer")


def _positive_float(setting: str, default: str) -> float:
    try:
        value = float(os.environ.get(setting, default))
        if value <= 0:
            raise ValueError(f"{setting} must be positive (got: {value})")
        return value
    except ValueError as e:
        _fail(setting, str(e), "Positive number (e.g., 0.5, 1, 15)")


# Parse RUNTIME_ENVIRONMENT with clear error message on misconfiguration
try:
    RUNTIME_ENVIRONMENT = RuntimeEnvironment(os.environ.get("RUNTIME_ENVIRONMENT", "PROD"))
except ValueError as e:
    _fail("RUNTIME_ENVIRONMENT", str(e), ", ".join(env.value for env in RuntimeEnvironment))

# Backend API
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:3001").rstrip("/")
_parsed_api_url = urlparse(API_BASE_URL)
if _parsed_api_url.scheme not in ("http", "https") or not _parsed_api_url.netloc:
    _fail("API_BASE_URL", "URL must start with http:// or https://", "e.g., http://192.168.1.20:3001")
API_HEALTH_PATH = os.environ.get("API_HEALTH_PATH", "/health")
API_USER_AGENT = os.environ.get("API_USER_AGENT", "Toolbox-App/1.0")
CHECKOUT_BY = os.environ.get("CHECKOUT_BY", "pos_system")

# Local persistence medium
try:
    STORAGE_BACKEND = StorageBackend(os.environ.get("STORAGE_BACKEND", "sqlite"))
except ValueError as e:
    _fail("STORAGE_BACKEND", str(e), ", ".join(b.value for b in StorageBackend))
STORAGE_DB_PATH = os.environ.get("STORAGE_DB_PATH", "data/pos_offline.sqlite")
STORAGE_NAMESPACE = os.environ.get("STORAGE_NAMESPACE", "toolbox")
REDIS_HOST = os.environ.get("REDIS_HOST", "localhost")
REDIS_PORT = _positive_int("REDIS_PORT", "6379")
REDIS_PASSWORD = os.environ.get("REDIS_PASSWORD") or None

# Cart session
CART_SCHEMA_VERSION = "2.0"
CART_EXPIRY_DAYS = _positive_int("CART_EXPIRY_DAYS", "30")
MAX_CART_HISTORY = _positive_int("MAX_CART_HISTORY", "10")
CART_AUTOSAVE_DELAY_SECONDS = _positive_float("CART_AUTOSAVE_DELAY_SECONDS", "1.0")

# Offline mutation queue
OFFLINE_QUEUE_MAX_RETRIES = _positive_int("OFFLINE_QUEUE_MAX_RETRIES", "3")
OFFLINE_DATA_VERSION = "1.2.0"

# Network cache layer
CACHE_VERSION = os.environ.get("CACHE_VERSION", "v1.2.0")
CACHE_TTL_PRODUCTS_SECONDS = _positive_int("CACHE_TTL_PRODUCTS_SECONDS", str(30 * 60))
CACHE_TTL_EMPLOYEES_SECONDS = _positive_int("CACHE_TTL_EMPLOYEES_SECONDS", str(60 * 60))
CACHE_TTL_STATIC_SECONDS = _positive_int("CACHE_TTL_STATIC_SECONDS", str(24 * 60 * 60))
FETCH_TIMEOUT_PRODUCTS_SECONDS = _positive_float("FETCH_TIMEOUT_PRODUCTS_SECONDS", "15")
FETCH_TIMEOUT_EMPLOYEES_SECONDS = _positive_float("FETCH_TIMEOUT_EMPLOYEES_SECONDS", "10")
FETCH_TIMEOUT_STATIC_SECONDS = _positive_float("FETCH_TIMEOUT_STATIC_SECONDS", "5")
CONNECTION_TEST_TIMEOUT_SECONDS = _positive_float("CONNECTION_TEST_TIMEOUT_SECONDS", "5")
REPLAY_TIMEOUT_SECONDS = _positive_float("REPLAY_TIMEOUT_SECONDS", "15")
CACHE_WORKER_AUTO_ACTIVATE = os.environ.get("CACHE_WORKER_AUTO_ACTIVATE", "true") == "true"

# Connectivity
CONNECTIVITY_POLL_SECONDS = _positive_float("CONNECTIVITY_POLL_SECONDS", "10")

# Rate Limiting Configuration
RATE_LIMIT_TEST_CONNECTION_PER_MINUTE = _positive_int("RATE_LIMIT_TEST_CONNECTION_PER_MINUTE", "10")
RATE_LIMIT_FETCH_ITEMS_PER_MINUTE = _positive_int("RATE_LIMIT_FETCH_ITEMS_PER_MINUTE", "30")

# Barcode scanner input classification
SCAN_MAX_KEY_INTERVAL_MS = _positive_int("SCAN_MAX_KEY_INTERVAL_MS", "50")
SCAN_MIN_LENGTH = _positive_int("SCAN_MIN_LENGTH", "3")

# Logging Configuration
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_MASK_SECRETS = os.environ.get("LOG_MASK_SECRETS", "true") == "true"  # Mask sensitive data in logs
LOG_DIR = os.environ.get("LOG_DIR", "logs")

# Log Retention: Environment-specific defaults
# Dev keeps a month for debugging, production keeps 5 days to save disk space
if RUNTIME_ENVIRONMENT == RuntimeEnvironment.DEV:
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "30"))
else:
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "5"))
