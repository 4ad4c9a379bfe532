# Matching
MATCH_TOLERANCE_DEG = 0.001  # ~100m, pending -> durable promotion window

# Lifetimes / intervals (seconds)
REPORT_LIFETIME_S = 4 * 60 * 60
SWEEP_INTERVAL_S = 5 * 60
BOUNDARIES_TTL_S = 30 * 60
BOUNDARIES_FETCH_TIMEOUT_S = 15
VALIDATOR_TIMEOUT_S = 2.0
SEARCH_MARKER_TTL_S = 5.0
DOCUMENT_POLL_S = 10
HTTP_TIMEOUT_S = 25

# Persisted state
BOUNDARIES_CACHE_KEY = "rmap.us_boundaries.v1"

# Fallback territory box: (south, west), (north, east). Inclusive.
FALLBACK_BOUNDS = ((20.0, -130.0), (50.0, -60.0))

# Document
REPORT_NODE_PREFIX = "reports-"

# Marker rendering
MARKER_CLASS = "custom-emoji-marker"
SEARCH_MARKER_CLASS = "temp-search-marker"
PENDING_COLOR = "#fbbf24"
CAPTION_PENDING = "Submitting..."
CAPTION_DURABLE = "Reported"

# Inbound events
EV_LOAD_EXISTING = "load_existing_reports"
EV_ADD_MARKER = "add_report_marker"
EV_REMOVE_MARKER = "remove_report_marker"
EV_BOUNDARIES_DATA = "us_boundaries_data"
EV_VALIDATION_RESULT = "coordinate_validation_result"
EV_CLEANUP_COMPLETED = "cleanup_completed"
EV_CLEANUP_TEMPORARY = "cleanup_temporary_markers"
EV_CLEANUP_ALL = "cleanup_all_markers_for_fingerprint"
EV_FLY_TO_ADDRESS = "fly_to_address"

# Outbound requests
REQ_GET_BOUNDARIES = "get_us_boundaries"
REQ_VALIDATE = "validate_coordinates"
REQ_MAP_REPORT = "map_report"
REQ_SELECT_ADDRESS = "select_address"
