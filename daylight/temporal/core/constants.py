"""Shared constants for Temporal workflows."""

# Timeouts
CLAIM_ACTIVITY_TIMEOUT_SECONDS = 30
EXTRACT_ACTIVITY_TIMEOUT_SECONDS = 300  # must exceed EXTRACTION_TIMEOUT_SECONDS
PERSIST_ACTIVITY_TIMEOUT_SECONDS = 60

# Retries
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_INTERVAL_SECONDS = 5
MAX_RETRY_INTERVAL_SECONDS = 60
