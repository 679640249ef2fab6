"""
Shared constants used across all engine modules.

Centralises magic numbers, default headers, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers (browser-like, some CDNs reject bare clients)
# ---------------------------------------------------------------------------

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
)

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
}

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

APP_DIR_NAME = ".netspeed"
DEBUG_ENV_VAR = "NETSPEED_DEBUG"

# ---------------------------------------------------------------------------
# Endpoint selection
# ---------------------------------------------------------------------------

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 0.1          # seconds between failed attempts
DEFAULT_PROBE_TIMEOUT = 2.0        # per HEAD request
DEFAULT_CAPABILITY_TIMEOUT = 3.0   # per download-capability check
DEFAULT_INTER_ENDPOINT_DELAY = 0.15
DEFAULT_CONCURRENCY = 6
MAX_CONCURRENCY = 16
DEFAULT_SELECTION_DEADLINE = 20.0  # whole probing phase

UNREACHABLE_LATENCY_MS = 2000.0
UNRESPONSIVE_SCORE = 0.1
DEFAULT_FAILURE_THRESHOLD = 3

CAPABILITY_PROBE_BYTES = 100_000   # size of the capability GET

# ---------------------------------------------------------------------------
# Measurement limits
# ---------------------------------------------------------------------------

MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 32
DEFAULT_CONNECTIONS = 4

DEFAULT_PING_COUNT = 10
DEFAULT_DURATION = 10.0          # seconds for download / upload
MIN_DURATION = 1.0
MAX_DURATION = 300.0
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100

WARMUP_SECONDS = 2.0            # discard speed samples in this window
SAMPLE_INTERVAL = 0.25          # 250 ms between speed samples
PING_INTERVAL = 0.1             # pause between latency samples

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 256 * 1024          # 256 KB
DOWNLOAD_REQUEST_BYTES = 25_000_000
UPLOAD_BUFFER_SIZE = 1024 * 1024 # 1 MB pre-generated random buffer
UPLOAD_REQUEST_BYTES = 8 * 1024 * 1024

# ---------------------------------------------------------------------------
# Speed filtering / smoothing
# ---------------------------------------------------------------------------

MAX_REASONABLE_SPEED = 20_000.0  # 20 Gbps; anything above is a spike
EMA_ALPHA = 0.25                 # exponential moving average weight
