"""Configuration management for the Aera document intelligence backend."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Supabase (Postgres + pgvector, Auth, Storage)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "documents")

# API Keys
MISTRAL_API_KEY = os.getenv("MISTRAL_API_KEY")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
MISTRAL_EMBED_MODEL = os.getenv("MISTRAL_EMBED_MODEL", "codestral-embed")
MISTRAL_API_URL = "https://api.mistral.ai/v1/embeddings"
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_EMBED_MODEL = os.getenv("GEMINI_EMBED_MODEL", "text-embedding-004")
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama-3.3-70b-versatile")

# Vision models by quality tier
PREMIUM_CLAUDE_MODEL = "claude-sonnet-4-5-20250929"
STANDARD_CLAUDE_MODEL = "claude-haiku-4-5-20251001"
PREMIUM_GEMINI_MODEL = "gemini-2.5-pro"
STANDARD_GEMINI_MODEL = "gemini-2.0-flash"
PREMIUM_IMAGE_BYTES = 2 * 1024 * 1024

# Embedding Configuration
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "60"))

# Chunking Configuration
CHUNK_MAX_CHARS = 1000  # characters
CHUNK_OVERLAP = 100  # characters
EMBED_BATCH_SIZE = 32  # chunks per embeddings request

# Retry Configuration (rate limits only)
RETRY_MAX_RETRIES = 3
RETRY_BASE_DELAY = 2.0  # seconds, doubled per retry

# Retrieval / Chat Configuration
CHAT_MATCH_COUNT = 8
MAX_CONTEXT_CHARS = 8000
CONTEXT_SEPARATOR = "\n---\n"
CHAT_MAX_TOKENS = 2048
CHAT_TEMPERATURE = 0.7

# Ingestion Configuration
SIGNED_URL_TTL = 60 * 60  # seconds
REPROCESS_MIN_DELAY = 2.0
REPROCESS_MAX_DELAY = 4.0
REPROCESS_DEFAULT_LIMIT = 50

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
