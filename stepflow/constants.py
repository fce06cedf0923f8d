"""Shared defaults for stepflow."""

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000

DEFAULT_CONFIG_FILE = "stepflow.yaml"
DEFAULT_STORE_URL = "file://.stepflow"

# Context keys with special meaning to command and script steps
WORKING_DIRECTORY_KEY = "workingDirectory"
ENV_KEY_PREFIX = "env."
SCRIPT_ENV_PREFIX = "STEPFLOW_"
