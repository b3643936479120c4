import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agenda.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Fixed UTC offset of the clinic's wall clock. Slot datetimes are stored as naive
# clinic-local times; aware inputs are converted with this offset.
SLOT_UTC_OFFSET_HOURS = float(os.getenv("SLOT_UTC_OFFSET_HOURS", "-3"))

# Widest window a single calendar query may cover
MATERIALIZER_MAX_RANGE_DAYS = int(os.getenv("MATERIALIZER_MAX_RANGE_DAYS", "370"))

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
