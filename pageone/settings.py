"""
Environment settings.

Read once from the process environment (and a project-root .env, if present).
Algorithm constants do NOT live here; see pageone.config.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env")

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

PROFILE_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("PROFILE_LOOKUP_TIMEOUT_SECONDS", "2.0"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Store tables
PROFILE_TABLE = os.getenv("PAGEONE_PROFILE_TABLE", "keyword_calibration_profiles")
HISTORY_TABLE = os.getenv("PAGEONE_HISTORY_TABLE", "keyword_products")
