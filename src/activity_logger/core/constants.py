"""Application-wide constants.

This module defines constants used throughout the application
to avoid magic numbers and ensure consistency.
"""

# Log table
ACTIVITY_LOG_TABLE = "activity_log"
USERNAME_MAX_LENGTH = 60
GUEST_USERNAME = "Guest"

# Cache
SCHEMA_CACHE_TTL_SECONDS = 12 * 60 * 60  # 12 hours

# Store operations
DEFAULT_STORE_TIMEOUT_SECONDS = 5.0

# Export
CSV_HEADER = ("ID", "Username", "Action", "Log Time")
EXPORT_FILENAME_FORMAT = "activity_logs_%Y-%m-%d_%H-%M-%S.csv"
LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Recorder
TRANSIENT_OPTION_PREFIXES = ("_transient_", "_site_transient_")

# Confirmation tokens
DEFAULT_CONFIRMATION_TOKEN_TTL_SECONDS = 3600
BULK_DELETE_SCOPE = "bulk_delete_logs"

# Secret key requirements
MIN_SECRET_KEY_LENGTH = 32
DEFAULT_INSECURE_SECRET = "change-me-in-production"
