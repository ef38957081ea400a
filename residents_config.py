# residents_config.py
import os
from dotenv import load_dotenv

load_dotenv() # Load variables from .env file

MONGODB_URI = os.getenv("MONGODB_URI")
DB_NAME = os.getenv("DB_NAME", "residents_db")
COLLECTION_NAME = os.getenv("COLLECTION_NAME", "residents")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def require_mongodb_uri():
    """Returns the configured MongoDB URI or fails if there is none."""
    if not MONGODB_URI:
        raise ValueError("MONGODB_URI not found in environment variables. Please create a .env file.")
    return MONGODB_URI
