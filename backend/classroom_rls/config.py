"""Environment configuration for the classroom access layer.

Loads a local .env file (package directory first, then the backend root) so
local development and tests work without exporting variables by hand.
"""

import os
from pathlib import Path

from dotenv import load_dotenv


def _load_local_env():
    pkg_dir = Path(__file__).resolve().parent
    for candidate in (pkg_dir / ".env", pkg_dir.parent / ".env"):
        if candidate.exists():
            load_dotenv(dotenv_path=candidate, override=False)


_load_local_env()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# Relational store
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./classroom_rls.db")
SQL_DEBUG = _flag("SQL_DEBUG")

# Auxiliary document store (optional sideband)
MONGODB_URI = os.getenv("MONGODB_URI")
MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME", "classroom_rls")

# Identity provider tokens
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

# Policy hardening
STRICT_STATUS_TRANSITIONS = _flag("STRICT_STATUS_TRANSITIONS")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
