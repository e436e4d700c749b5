import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "geo_attendance_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

FRAUD_HIGH_SPEED_KMH = 120.0
FRAUD_MEDIUM_SPEED_KMH = 60.0

FRAUD_PATTERN_WINDOW_DAYS = 30
FRAUD_PATTERN_THRESHOLD = 3
FRAUD_PATTERN_HIGH_THRESHOLD = 10

LOCK_BACKEND = "memory"
LOCK_TIMEOUT_SECONDS = 2.0

FLAGGED_RECORDS_LIMIT = 50
