import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "geo_attendance"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

FRAUD_HIGH_SPEED_KMH = float(os.getenv("FRAUD_HIGH_SPEED_KMH", "120"))
FRAUD_MEDIUM_SPEED_KMH = float(os.getenv("FRAUD_MEDIUM_SPEED_KMH", "60"))

# Repeated-behaviour analysis: look-back window (days) and suspicious-day counts
FRAUD_PATTERN_WINDOW_DAYS = int(os.getenv("FRAUD_PATTERN_WINDOW_DAYS", "30"))
FRAUD_PATTERN_THRESHOLD = int(os.getenv("FRAUD_PATTERN_THRESHOLD", "3"))
FRAUD_PATTERN_HIGH_THRESHOLD = int(os.getenv("FRAUD_PATTERN_HIGH_THRESHOLD", "10"))

# Several app instances behind a load balancer need the shared lock.
LOCK_BACKEND = os.getenv("LOCK_BACKEND", "mysql")
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))

FLAGGED_RECORDS_LIMIT = int(os.getenv("FLAGGED_RECORDS_LIMIT", "50"))
