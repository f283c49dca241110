"""Constants for the live transcript relay."""

import os

# App identification
APP_NAME = "koach-transcription"
APP_VERSION = os.getenv("APP_VERSION", "2.0.0")
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("PORT", "3000"))

# Client-facing WebSocket endpoint
REALTIME_PATH = "/realtime"

# AssemblyAI configuration
ASSEMBLYAI_API_KEY = os.getenv("ASSEMBLYAI_API_KEY", "")
ASSEMBLYAI_STREAMING_URL = os.getenv(
    "ASSEMBLYAI_STREAMING_URL",
    "wss://streaming.assemblyai.com/v3/ws",
)
ASSEMBLYAI_API_URL = os.getenv("ASSEMBLYAI_API_URL", "https://api.assemblyai.com")

# Persistence proxy configuration
PROXY_URL = os.getenv(
    "PROXY_URL",
    "https://tisayujoykquxfflubjn.supabase.co/functions/v1/proxy-transcript",
)
PROXY_SECRET = os.getenv("PROXY_SECRET", "")

# Audio configuration (AssemblyAI streaming expects 16kHz mono PCM16)
UPSTREAM_SAMPLE_RATE = 16000
UPSTREAM_ENCODING = "pcm_s16le"
UPSTREAM_FORMAT_TURNS = True
PCM16_SAMPLE_WIDTH = 2

# Persistence throttle intervals (seconds)
LIVE_PERSIST_INTERVAL = float(os.getenv("LIVE_PERSIST_INTERVAL", "5"))
RECORDING_PERSIST_INTERVAL = float(os.getenv("RECORDING_PERSIST_INTERVAL", "30"))

# Connection timeouts (seconds)
UPSTREAM_CONNECT_TIMEOUT = 30
UPSTREAM_CLOSE_TIMEOUT = 5
PERSISTENCE_TIMEOUT = 10
SESSION_SHUTDOWN_TIMEOUT = 10

# Retry configuration
MAX_RECONNECT_ATTEMPTS = 3
RETRY_BACKOFF_BASE = 2  # Exponential backoff base

# Batch transcription
BATCH_POLL_INTERVAL = 3.0
BATCH_MAX_WAIT = 600.0
