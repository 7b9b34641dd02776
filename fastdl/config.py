"""
Configuration constants and settings for fastdl.
"""

# Version information
VERSION = "1.0.0"
APP_NAME = "Source Engine FastDL Watcher"

# Comma-separated file types written into a freshly created config
DEFAULT_FILE_TYPES = "mp3,vtx,bsp,nav,mdl,phy,vmt,vtf,dx80.vtx,dx90.vtx,sw.vtx,wav"

# Used whenever the configured file types parse to nothing
DEFAULT_EXTENSIONS = frozenset(
    [
        ".nav",  # Navigation meshes
        ".bsp",  # Maps
        ".mdl",  # Models
        ".phy",  # Physics meshes
        ".vvd",  # Vertex data
        ".vtf",  # Textures
        ".vmt",  # Materials
        ".wav",  # Audio files
        ".mp3",  # Audio files
        ".vtx",  # Model strip data
    ]
)

# FastDL clients expect bzip2 artifacts next to the original name
COMPRESSED_SUFFIX = ".bz2"

# Default configuration values
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_PROCESSED_FILES_PATH = "processed_files.txt"
DEFAULT_LOG_FILE = "fastdl.log"
DEFAULT_CHECK_INTERVAL = 120
DEFAULT_RUN_24X7 = True

# Compression settings
DEFAULT_COMPRESSION_LEVEL = 9
DEFAULT_COMPRESSION_TIMEOUT = 300
MAX_PARALLEL_WORKERS = 32

# Batching and checkpointing
DEFAULT_BATCH_SIZE = 25
DEFAULT_CHECKPOINT_EVERY_BATCHES = 4

# Liveness check: size is sampled twice this many seconds apart
DEFAULT_GROWTH_CHECK_INTERVAL = 0.5

# Scheduling loop
ERROR_COOLDOWN_SECONDS = 30
QUIET_CYCLE_LOG_EVERY = 5

# Processed list siblings used during an atomic save
TEMP_SUFFIX = ".tmp"
BACKUP_SUFFIX = ".backup"
PARTIAL_SUFFIX = ".part"
