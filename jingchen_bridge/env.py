import os
from dotenv import load_dotenv

load_dotenv()  # lee .env del cwd

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))

API_KEY = os.getenv("API_KEY", "")
ALLOWED_IPS = [s.strip() for s in os.getenv("ALLOWED_IPS", "").split(",") if s.strip()]

BRIDGE_ID = os.getenv("BRIDGE_ID", "bridge-unknown")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
AUDIT_LOG_PATH = os.getenv("AUDIT_LOG_PATH", "./logs/audit.jsonl")
JOB_HISTORY_MAX = int(os.getenv("JOB_HISTORY_MAX", "200"))

JINGCHEN_WS_URL = os.getenv("JINGCHEN_WS_URL", "ws://127.0.0.1:37989")
RECONNECT_INTERVAL_SECONDS = float(os.getenv("RECONNECT_INTERVAL_SECONDS", "3"))

DEFAULT_DENSITY = int(os.getenv("DEFAULT_DENSITY", "3"))
DEFAULT_LABEL_TYPE = int(os.getenv("DEFAULT_LABEL_TYPE", "1"))
DEFAULT_PRINT_MODE = int(os.getenv("DEFAULT_PRINT_MODE", "1"))

DELAY_AFTER_INIT_SECONDS = float(os.getenv("DELAY_AFTER_INIT_SECONDS", "2.0"))
DELAY_AFTER_COMMIT_SECONDS = float(os.getenv("DELAY_AFTER_COMMIT_SECONDS", "1.0"))
DELAY_BETWEEN_DRAWS_SECONDS = float(os.getenv("DELAY_BETWEEN_DRAWS_SECONDS", "0.1"))
DELAY_AFTER_DRAW_COMPLETE_SECONDS = float(os.getenv("DELAY_AFTER_DRAW_COMPLETE_SECONDS", "0.3"))
RETRY_INTERVAL_SECONDS = float(os.getenv("RETRY_INTERVAL_SECONDS", "1.0"))
START_JOB_ATTEMPTS = int(os.getenv("START_JOB_ATTEMPTS", "3"))
PLACEHOLDER_THRESHOLD = int(os.getenv("PLACEHOLDER_THRESHOLD", "1"))

TIMEOUT_DEFAULT_SECONDS = float(os.getenv("TIMEOUT_DEFAULT_SECONDS", "10"))
TIMEOUT_LONG_SCAN_SECONDS = float(os.getenv("TIMEOUT_LONG_SCAN_SECONDS", "25"))
TIMEOUT_PRINT_SUBMIT_SECONDS = float(os.getenv("TIMEOUT_PRINT_SUBMIT_SECONDS", "30"))

# lado cliente (CLI)
BRIDGE_URL = os.getenv("BRIDGE_URL", "http://127.0.0.1:3000")
