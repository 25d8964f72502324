import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "event_attendance"),
}

QR_TOKEN_SECRET = os.getenv("QR_TOKEN_SECRET", "please-set-QR_TOKEN_SECRET")
QR_TOKEN_TTL_SECONDS = int(os.getenv("QR_TOKEN_TTL_SECONDS", "3600"))

LOCATION_ACCURACY_THRESHOLD_METERS = float(os.getenv("LOCATION_ACCURACY_THRESHOLD_METERS", "100"))
DEFAULT_GEOFENCE_RADIUS_METERS = float(os.getenv("DEFAULT_GEOFENCE_RADIUS_METERS", "100"))
BULK_BATCH_SIZE = int(os.getenv("BULK_BATCH_SIZE", "20"))

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
