import os
from dotenv import load_dotenv

load_dotenv()

API_URL = os.getenv("API_URL", "ws://localhost:8080/")
API_TOKEN = os.getenv("API_TOKEN", "")
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "60"))
RECONNECT_DELAY_SECONDS = float(os.getenv("RECONNECT_DELAY_SECONDS", "10"))
