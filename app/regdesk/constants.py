"""
Central constants for the review dashboard.

Policy values here are defaults only; SLA_DAYS and REJECTION_REASONS can be
overridden through the environment (see config.py).
"""
from __future__ import annotations

DEFAULT_SLA_DAYS = 5

DEFAULT_SIGNED_URL_EXPIRES_IN = 3600  # seconds

DEFAULT_REJECTION_REASONS = (
    "Document Issues - Blurry/Unreadable",
    "Document Issues - Cropped",
    "Document Issues - Missing Page",
    "Document Issues - Expired",
    "Data Mismatch - Name mismatch",
    "Data Mismatch - Address mismatch",
    "Data Mismatch - ID number mismatch",
    "Compliance - Sanctions/PEP hit",
    "Compliance - Additional due diligence required",
    "Incomplete application",
    "Invalid business type",
    "Insufficient supporting documents",
)

# Dashboard date-range keys -> trailing window in days
DATE_RANGES = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
DEFAULT_DATE_RANGE = "30d"

DATE_RANGE_LABELS = {
    "7d": "Last 7 Days",
    "30d": "Last 30 Days",
    "90d": "Last 90 Days",
    "1y": "Last Year",
}

MONTHLY_BUCKETS = 6

# Storage folder listings are capped (one applicant folder per request)
STORAGE_LIST_LIMIT = 100
