"""Configuration settings for the Temporary Audio Share server."""
import os

# Upload limits
MAX_AUDIO_BYTES = int(os.getenv("MAX_AUDIO_BYTES", str(25 * 1024 * 1024)))  # 25MB

# Lifetime of an uploaded entry and how often expired entries are swept
AUDIO_TTL_SECONDS = int(os.getenv("AUDIO_TTL_SECONDS", str(60 * 60)))  # 1 hour
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", str(10 * 60)))  # 10 minutes

# Token constraints
MAX_TOKEN_LENGTH = int(os.getenv("MAX_TOKEN_LENGTH", "64"))

# Streaming
STREAM_CHUNK_SIZE = int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024)))  # 64KB
DEFAULT_CONTENT_TYPE = "audio/mpeg"

# Storage backend: memory, disk or s3
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")

# Directory paths (disk backend)
DATA_DIR = os.getenv("DATA_DIR", "./data")
TEMP_DIR = os.getenv("TEMP_DIR", "./temp")

# S3-compatible bucket (s3 backend: Cloudflare R2, MinIO, AWS S3)
S3_BUCKET = os.getenv("S3_BUCKET", "")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None
S3_REGION = os.getenv("S3_REGION", "auto")
S3_ACCESS_KEY_ID = os.getenv("S3_ACCESS_KEY_ID") or None
S3_SECRET_ACCESS_KEY = os.getenv("S3_SECRET_ACCESS_KEY") or None
S3_KEY_PREFIX = os.getenv("S3_KEY_PREFIX", "audio/")

# Store health monitor
STORE_FAILURE_THRESHOLD = int(os.getenv("STORE_FAILURE_THRESHOLD", "5"))
STORE_FAILURE_WINDOW_SECONDS = int(os.getenv("STORE_FAILURE_WINDOW_SECONDS", "60"))

# Logging
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
