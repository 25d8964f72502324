"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_LATE_THRESHOLD_MINUTES = 15
DEFAULT_EARLY_THRESHOLD_MINUTES = 15

# Fixed thresholds of the post-hoc recompute path (metrics / synchronization).
RECOMPUTE_LATE_THRESHOLD_MINUTES = 15
RECOMPUTE_EARLY_LEAVE_THRESHOLD_MINUTES = 15

DEFAULT_GEOFENCE_RADIUS_METERS = 100.0
LOCATION_ACCURACY_THRESHOLD_METERS = 100.0
EARTH_RADIUS_METERS = 6371e3

BULK_BATCH_SIZE = 20
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

SYSTEM_ACTOR = "system"
MANUAL_VALIDATION_NOTE = "Manual entry - requires validation"
ABSENTEE_NOTE = "Automatically marked as absent"
