"""Internal constants shared across the library."""

LEADERBOARD_URL_TEMPLATE = "https://warthunder.com/en/community/getclansleaderboard/dif/_hist/page/{page}/sort/dr_era5"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
HTML_REQUEST_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_CACHE_TTL: float = 30.0
DEFAULT_TIMEOUT: float = 15.0
DEFAULT_MAX_PAGES = 100
DEFAULT_LEADERBOARD_LIMIT = 20

# ------------------------------------------------------------------
# Persisted file names (relative to the configured data directory)
# ------------------------------------------------------------------

SNAPSHOT_FILE = "squadron_data.json"
EVENTS_FILE = "squadron_events.json"
LAST_SESSION_FILE = "last_session.json"
ARCHIVE_DIR = "logs"

# Caps applied to per-member change lists carried on points_change events.
MAX_MEMBER_CHANGES = 50
