import os
from dotenv import load_dotenv

# Load .env from the backend directory
load_dotenv(os.path.join(os.path.dirname(__file__), "..", "..", ".env"))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Database: stored in backend/data/
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.abspath(os.path.join(BASE_DIR, "..", ".."))

DATABASE_PATH: str = os.getenv(
    "DATABASE_PATH",
    os.path.join(BACKEND_DIR, "data", "supplylist.db"),
)

# Version store: "sqlite" (local) or "http" (remote content store)
CONTENT_STORE_BACKEND: str = os.getenv("CONTENT_STORE_BACKEND", "sqlite").lower()
CONTENT_STORE_URL: str = os.getenv("CONTENT_STORE_URL", "http://localhost:1337").rstrip("/")
CONTENT_STORE_TOKEN: str = os.getenv("CONTENT_STORE_TOKEN", "")
CONTENT_STORE_VERSIONS_FIELD: str = os.getenv("CONTENT_STORE_VERSIONS_FIELD", "versiones_materiales")
CONTENT_STORE_TIMEOUT: float = _float("CONTENT_STORE_TIMEOUT", 15.0)
MAX_CONFLICT_RETRIES: int = _int("MAX_CONFLICT_RETRIES", 3)

# Catalog (WooCommerce-style REST API)
CATALOG_URL: str = os.getenv("CATALOG_URL", "http://localhost:8080/wp-json/wc/v3").rstrip("/")
CATALOG_KEY: str = os.getenv("CATALOG_KEY", "")
CATALOG_SECRET: str = os.getenv("CATALOG_SECRET", "")
CATALOG_TIMEOUT: float = _float("CATALOG_TIMEOUT", 20.0)
CATALOG_PAGE_SIZE: int = _int("CATALOG_PAGE_SIZE", 100)
CATALOG_MAX_PAGES: int = _int("CATALOG_MAX_PAGES", 20)

# Similarity thresholds
MATCH_HIGH_THRESHOLD: float = _float("MATCH_HIGH_THRESHOLD", 0.85)
MATCH_LOW_THRESHOLD: float = _float("MATCH_LOW_THRESHOLD", 0.55)
MATCH_AMBIGUITY_BAND: float = _float("MATCH_AMBIGUITY_BAND", 0.05)

# Classification (OpenRouter, OpenAI-compatible)
OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "").strip()
OPENROUTER_API_URL: str = os.getenv("OPENROUTER_API_URL", "https://openrouter.ai/api/v1").strip()
CLASSIFICATION_MODELS: list[str] = [
    m.strip()
    for m in os.getenv(
        "CLASSIFICATION_MODELS",
        "google/gemini-2.5-flash,google/gemini-2.5-flash-lite,openai/gpt-4o-mini",
    ).split(",")
    if m.strip()
]
CLASSIFICATION_TIMEOUT: float = _float("CLASSIFICATION_TIMEOUT", 30.0)
CLASSIFICATION_FAILURE_THRESHOLD: int = _int("CLASSIFICATION_FAILURE_THRESHOLD", 3)
CLASSIFICATION_RESET_SECONDS: float = _float("CLASSIFICATION_RESET_SECONDS", 60.0)
