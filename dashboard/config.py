import os
import logging
from dotenv import load_dotenv

load_dotenv()

DASHBOARD_PORT = int(os.getenv("DASHBOARD_PORT", 3305))
DASHBOARD_HOST = os.getenv("DASHBOARD_HOST", "127.0.0.1")
DASHBOARD_TOKEN = os.getenv("DASHBOARD_TOKEN")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "manager.log")
SETTINGS_FILE = os.getenv("SETTINGS_FILE", "llama-config.json")
LLAMA_SERVER_EXE = os.getenv("LLAMA_SERVER_EXE")
LOG_POLL_INTERVAL = float(os.getenv("LOG_POLL_INTERVAL", 0.2))
LOG_HISTORY_LIMIT = int(os.getenv("LOG_HISTORY_LIMIT", 5000))

if not DASHBOARD_TOKEN:
    raise ValueError("DASHBOARD_TOKEN environment variable is required")

# Configure logging with file and console handlers
log_level = getattr(logging, LOG_LEVEL)
log_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

root_logger = logging.getLogger()
root_logger.setLevel(log_level)

# File handler (LOG_FILE= disables it)
if LOG_FILE:
    file_handler = logging.FileHandler(LOG_FILE)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(log_format)
    root_logger.addHandler(file_handler)

# Console handler
console_handler = logging.StreamHandler()
console_handler.setLevel(log_level)
console_handler.setFormatter(log_format)
root_logger.addHandler(console_handler)
