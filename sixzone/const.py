"""Constants for the sixzone bridge."""

DOMAIN = "sixzone"

DEFAULT_DEVICE = "/dev/ttyUSB0"
DEFAULT_BAUDRATE = 9600
DEFAULT_AMP_COUNT = 1
DEFAULT_RAMP_INTERVAL_MS = 250
MIN_RAMP_INTERVAL_MS = 10  # keep the link from being flooded
MAX_RAMP_INTERVAL_MS = 10000
DEFAULT_POLL_TIMEOUT = 10.0  # seconds
DEFAULT_SAVE_DELAY = 1.0  # seconds
DEFAULT_DATA_DIR = "./data"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_CORS_ORIGINS = ["*"]

BAUDRATES = [9600, 19200, 38400, 57600, 115200, 230400]
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

CONF_DEVICE = "device"
CONF_BAUDRATE = "baudrate"
CONF_AMP_COUNT = "amp_count"
CONF_RAMP_INTERVAL = "ramp_interval"
CONF_POLL_TIMEOUT = "poll_timeout"
CONF_EXIT_ON_ERROR = "exit_on_error"
CONF_DATA_DIR = "data_dir"
CONF_HOST = "host"
CONF_PORT = "port"
CONF_LOG_LEVEL = "log_level"
CONF_CORS_ORIGINS = "cors_origins"

# Environment variable for each option
ENV_VARS = {
    CONF_DEVICE: "DEVICE",
    CONF_BAUDRATE: "BAUDRATE",
    CONF_AMP_COUNT: "AMPCOUNT",
    CONF_RAMP_INTERVAL: "RAMPTIME",
    CONF_POLL_TIMEOUT: "POLL_TIMEOUT",
    CONF_EXIT_ON_ERROR: "EXIT_ON_ERROR",
    CONF_DATA_DIR: "DATA_DIR",
    CONF_HOST: "HOST",
    CONF_PORT: "PORT",
    CONF_LOG_LEVEL: "LOG_LEVEL",
    CONF_CORS_ORIGINS: "CORS_ORIGINS",
}

# Storage
STORAGE_VERSION = 1
ZONES_FILE = "zones.json"
SOURCES_FILE = "sources.json"
SCENARIOS_FILE = "scenarios.json"
