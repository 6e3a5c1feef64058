STATE_DIR_NAME = ".tasksync"
STORE_FILE = "tasks.yaml"
STORE_LOCK_FILE = "tasks.lock"
CONFIG_FILE = "config.yaml"
STORE_VERSION = 1
WINDOWS_LOCK_BYTES = 4096

DEFAULT_API_BASE_URL = "http://localhost:3000/api"
DEFAULT_BATCH_SIZE = 50
DEFAULT_HEALTH_TIMEOUT_SECONDS = 5.0
DEFAULT_BATCH_TIMEOUT_SECONDS = 30.0

ENV_PREFIX = "TASKSYNC"

HEALTH_PATH = "/sync/health"
BATCH_PATH = "/sync/batch"

UNKNOWN_SYNC_ERROR = "Unknown error"
