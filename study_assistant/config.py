"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(DATA_DIR / "uploads")))

# Ensure data directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

# Provider selection ("ollama" or "openai"), chosen independently
EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "ollama")
CHAT_PROVIDER = os.getenv("CHAT_PROVIDER", "ollama")

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text:latest")  # 768 dims

# OpenAI-compatible configuration (embeddings from OpenAI, chat from DeepSeek by default)
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")  # 1536 dims
CHAT_API_BASE_URL = os.getenv("CHAT_API_BASE_URL", "https://api.deepseek.com")
CHAT_API_KEY = os.getenv("CHAT_API_KEY", os.getenv("DEEPSEEK_API_KEY", ""))
OPENAI_CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "deepseek-chat")

# Completion parameters
COMPLETION_TEMPERATURE = float(os.getenv("COMPLETION_TEMPERATURE", "0.7"))
COMPLETION_MAX_TOKENS = int(os.getenv("COMPLETION_MAX_TOKENS", "2048"))

# Timeouts (seconds)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60.0"))
EMBED_TIMEOUT = float(os.getenv("EMBED_TIMEOUT", "30.0"))

# RAG parameters (character-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
FALLBACK_CONTEXT_CHARS = int(os.getenv("FALLBACK_CONTEXT_CHARS", "3000"))

# Prompt input limits (characters of document text sent to the model)
SUMMARY_INPUT_CHARS = int(os.getenv("SUMMARY_INPUT_CHARS", "8000"))
QUESTIONS_INPUT_CHARS = int(os.getenv("QUESTIONS_INPUT_CHARS", "6000"))

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))

# Database
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "study_assistant.sqlite")))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
