"""Configuration module for the Classroom Invite service.

This module provides centralized configuration management, including directory
paths, API server settings, authentication, invitation code policy, rate
limiting and audit export limits. All configuration values can be overridden
via environment variables.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Directory Configuration ---

# Root directory of the project
ROOT_DIR = Path(__file__).parent.parent.resolve()

# Data directory name
DATA_DIR_NAME = "data"
DATA_DIR = ROOT_DIR / DATA_DIR_NAME

# --- Database Configuration ---

DATABASE_URL: str = os.getenv(
    "DATABASE_URL", f"sqlite:///{DATA_DIR}/classroom_invite.db"
)

# --- API Server Configuration ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

# CORS allowed origins (comma-separated list)
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,"
    "http://127.0.0.1:3000",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]

# --- Logging Configuration ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Authentication Configuration ---

JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

# Accept X-User-Id / X-Role headers as the caller identity. Development and
# test environments only; production deployments authenticate with JWT.
TRUST_IDENTITY_HEADERS: bool = (
    os.getenv("TRUST_IDENTITY_HEADERS", "false").lower() == "true"
)

# --- Invitation Code Configuration ---

# No 0/O and no 1/I
INVITE_CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH: int = int(os.getenv("INVITE_CODE_LENGTH", "6"))

# Usage limit applied when the teacher does not supply one
INVITE_DEFAULT_USAGE_LIMIT: int = int(os.getenv("INVITE_DEFAULT_USAGE_LIMIT", "30"))

# Attempts at rotate-or-create before giving up on uniqueness conflicts
INVITE_CODE_MAX_ATTEMPTS: int = int(os.getenv("INVITE_CODE_MAX_ATTEMPTS", "3"))

# --- Rate Limit Configuration ---

# Student join attempts per (origin, user)
JOIN_RATE_LIMIT_MAX: int = int(os.getenv("JOIN_RATE_LIMIT_MAX", "5"))
JOIN_RATE_LIMIT_WINDOW: float = float(os.getenv("JOIN_RATE_LIMIT_WINDOW", "60"))

# Admin audit queries and exports per (origin, user)
AUDIT_RATE_LIMIT_MAX: int = int(os.getenv("AUDIT_RATE_LIMIT_MAX", "30"))
AUDIT_RATE_LIMIT_WINDOW: float = float(os.getenv("AUDIT_RATE_LIMIT_WINDOW", "60"))

# --- Audit Configuration ---

AUDIT_QUERY_DEFAULT_LIMIT: int = 100
AUDIT_QUERY_MAX_LIMIT: int = 1000

# Maximum rows in a single-page CSV export
AUDIT_EXPORT_PAGE_CAP: int = int(os.getenv("AUDIT_EXPORT_PAGE_CAP", "10000"))

# Rows fetched per batch when streaming a full export
AUDIT_EXPORT_BATCH_SIZE: int = int(os.getenv("AUDIT_EXPORT_BATCH_SIZE", "1000"))

# Hard ceiling for a streamed export
AUDIT_EXPORT_MAX_ROWS: int = int(os.getenv("AUDIT_EXPORT_MAX_ROWS", "500000"))
