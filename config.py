import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

DB_PATH = os.getenv("PATIENTS_DB_PATH", "patients.db")
STATIC_DIR = Path(os.getenv("STATIC_DIR", "public"))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
