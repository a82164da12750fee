"""
Core Constants for Music Catalog

Central place for the magic numbers and labels shared across modules.
"""

# Classification
UNKNOWN_ARTIST = "Unknown Artist"
UNTITLED = "Untitled"
ARTIST_TITLE_SEPARATOR = " - "

BUCKET_REMIXES = "Remixes & Edits"
BUCKET_LIVE = "Live & Acoustic"
BUCKET_COMPILATIONS = "Compilations"
BUCKET_SINGLES_EDITS = "Singles & Edits"
BUCKET_SINGLES = "Singles"

ALBUM_BUCKETS = (
    BUCKET_REMIXES,
    BUCKET_LIVE,
    BUCKET_COMPILATIONS,
    BUCKET_SINGLES_EDITS,
    BUCKET_SINGLES,
)

# File selection
SUPPORTED_AUDIO_FORMATS = ['.mp3', '.flac', '.m4a', '.wav', '.ogg', '.wma', '.aac']
MIN_AUDIO_FILE_SIZE = 1000  # bytes; smaller files are placeholders or broken downloads

# Hashing
DEFAULT_HASH_ALGORITHM = "sha256"
HASH_CHUNK_SIZE = 65536  # 64KB reads

# Placement
TEMP_FILE_PREFIX = ".mc-"
TEMP_FILE_SUFFIX = ".partial"
MAX_COLLISION_SUFFIX = 10000

# Worker pool
DEFAULT_WORKER_THREADS = 4
MAX_WORKER_THREADS = 32
WORK_QUEUE_FACTOR = 2  # submitted-but-unfinished items per worker

# Cache tiers
CACHE_TIER_HOT = "hot"
CACHE_TIER_RECENT = "recent"
DEFAULT_CACHE_BUDGET_BYTES = 30 * 1024 ** 3
DEFAULT_TOP_ARTISTS = 5
DEFAULT_TRACKS_PER_HOT_ARTIST = 10
DEFAULT_RECENT_TRACKS = 20

# Workspace layout
CATALOG_FILENAME = "library.db"
LEDGER_FILENAME = "ledger.jsonl"
INDEX_DIRNAME = "indexes"
RUN_STATISTICS_FILENAME = "run_statistics.json"

# Cut sheets
CUE_FRAMES_PER_SECOND = 75
CUE_SPLIT_CODEC = "libmp3lame"
CUE_SPLIT_BITRATE = "320k"

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130
