import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "event_attendance_test"),
}

QR_TOKEN_SECRET = "test-qr-secret"
QR_TOKEN_TTL_SECONDS = 300

LOCATION_ACCURACY_THRESHOLD_METERS = 100.0
DEFAULT_GEOFENCE_RADIUS_METERS = 100.0
BULK_BATCH_SIZE = 20

DEBUG = False
TESTING = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
