"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_METERS = 6_371_000

MIN_ENTITY_RADIUS_METERS = 10
MAX_ENTITY_RADIUS_METERS = 1000

DEFAULT_HIGH_SPEED_KMH = 120.0
DEFAULT_MEDIUM_SPEED_KMH = 60.0

DEFAULT_FLAGGED_LIMIT = 50
NEARBY_ENTITY_SUGGESTIONS = 5

FLAG_REASON_SEPARATOR = "; "

# Marker shared by every geofence flag reason
OUTSIDE_AREA_REASON = "outside authorized area"

# Repeated-behaviour analysis over recent attendance
DEFAULT_PATTERN_WINDOW_DAYS = 30
DEFAULT_PATTERN_THRESHOLD = 3
DEFAULT_PATTERN_HIGH_THRESHOLD = 10
DEFAULT_REPEATED_LOCATION_THRESHOLD = 5
DEFAULT_TIME_DEVIATION_MINUTES = 120
