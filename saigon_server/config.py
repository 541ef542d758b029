import os
from dotenv import load_dotenv

load_dotenv()

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))

# Shared secret every agent message must carry. Unset means nothing is accepted.
AUTH_TOKEN = os.getenv("AUTH_TOKEN")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./saigon-data.db")

# Seconds a session may sit idle before it is torn down
DATA_TIMEOUT = float(os.getenv("DATA_TIMEOUT", "600"))

# 0 or less = no limit on concurrent agent sessions
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "0"))
if MAX_SESSIONS <= 0:
    MAX_SESSIONS = None

TEMPLATE_DIR = os.getenv("TEMPLATE_DIR", os.path.join(os.path.dirname(__file__), "templates"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
