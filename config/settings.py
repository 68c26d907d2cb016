import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/deductions.db")

# Rate table history (JSON, append-only)
RATE_TABLES_PATH = Path(os.getenv("RATE_TABLES_PATH", str(BASE_DIR / "config" / "rate_tables.json")))

# Paths
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "output")))
DATA_DIR = BASE_DIR / "data"

# Application settings
DEBUG = os.getenv("DEBUG", "False").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")

# Batch runner
BATCH_MAX_WORKERS = int(os.getenv("BATCH_MAX_WORKERS", "8"))

# Filing header defaults
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "Rp")
COMPANY_NAME = os.getenv("COMPANY_NAME", "PT Contoh Indonesia")
COMPANY_TAX_ID = os.getenv("COMPANY_TAX_ID", "01.234.567.8-901.000")
