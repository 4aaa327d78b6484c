import os
import re

from dotenv import find_dotenv, load_dotenv


# Load environment variables with .env, .env.dev/.env.prod support
def _load_env_files() -> None:
    """
    Load .env files with this precedence:
    1) Base .env (if present)
    2) Explicit file via ENV_FILE (e.g., .env.dev or ./config/.env.prod)
    3) Environment-specific file inferred from ENVIRONMENT/ENV/PYTHON_ENV
        - Supports aliases dev -> development, prod -> production, stage and stg -> staging
    Note: Existing OS environment variables are never overridden.
    """
    # 1) Base .env
    base_path = find_dotenv(".env", usecwd=True)
    if base_path:
        load_dotenv(base_path, override=False)

    # 2) Explicit file via ENV_FILE
    explicit = os.environ.get("ENV_FILE")
    if explicit:
        explicit_path = explicit if os.path.isabs(explicit) else find_dotenv(explicit, usecwd=True)
        if explicit_path:
            load_dotenv(explicit_path, override=False)
            return

    # 3) Environment-specific file inferred from ENVIRONMENT/ENV/PYTHON_ENV
    env_name = (
        os.environ.get("ENVIRONMENT") or os.environ.get("ENV") or os.environ.get("PYTHON_ENV")
    )
    if env_name:
        slug = str(env_name).strip().lower()
        alias = {
            "dev": "development",
            "prod": "production",
            "stage": "staging",
            "stg": "staging",
            "test": "test",
        }
        resolved = alias.get(slug, slug)
        for candidate in (f".env.{resolved}", f".env.{slug}"):
            path = find_dotenv(candidate, usecwd=True)
            if path:
                load_dotenv(path, override=False)
                break


_load_env_files()

# === Environment Configuration ===
ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")  # development, staging, production

# === Server Configuration ===
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")


def _get_int_env(var_name: str, default_value: int) -> int:
    """
    Parse an integer environment variable robustly.
    - Trims whitespace and trailing semicolons.
    - Falls back to the first integer found in the string.
    - Returns the provided default if parsing fails.
    """
    raw = os.environ.get(var_name, str(default_value))
    text = str(raw).strip().rstrip(";")
    try:
        return int(text)
    except ValueError:
        match = re.search(r"[-+]?\d+", text or "")
        if match:
            return int(match.group(0))
    return int(default_value)


SERVER_PORT = _get_int_env("SERVER_PORT", 3001)


# === CORS Configuration ===
def _get_cors_origins() -> list[str]:
    """
    Return CORS origins from env or a safe default.
    Example env format:
      CORS_ORIGINS="http://localhost:5173,http://127.0.0.1:5173,https://yourdomain.com"
    """
    raw = os.environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        # Default to permissive wildcard for local/dev if not provided
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


CORS_ORIGINS = _get_cors_origins()

# === Logging Configuration ===
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # text, json

# === Database Configuration ===
DATABASE_BACKEND = os.environ.get("DATABASE_BACKEND", "mongodb").strip().lower()  # mongodb, memory
MONGODB_URI = os.environ.get("MONGODB_URI")
DATABASE_NAME = os.environ.get("DATABASE_NAME", "hike_planner")
# Client-side timeout applied to every store operation
MONGODB_TIMEOUT_MS = _get_int_env("MONGODB_TIMEOUT_MS", 10000)
# Bounded retry for throttled store operations
STORE_MAX_RETRIES = _get_int_env("STORE_MAX_RETRIES", 3)
STORE_RETRY_BASE_DELAY_MS = _get_int_env("STORE_RETRY_BASE_DELAY_MS", 100)

# === Query / Pagination ===
DEFAULT_PAGE_SIZE = _get_int_env("DEFAULT_PAGE_SIZE", 20)
MAX_PAGE_SIZE = _get_int_env("MAX_PAGE_SIZE", 100)

# === Recommendations ===
RECOMMENDATION_TTL_DAYS = _get_int_env("RECOMMENDATION_TTL_DAYS", 7)

# === JWT Configuration ===
JWT_SECRET = os.environ.get("JWT_SECRET", "your-secret-key-change-this-in-production")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = _get_int_env("JWT_EXPIRATION_HOURS", 24)

# === Build Metadata ===
GIT_COMMIT = os.environ.get("GIT_COMMIT", "unknown")

# === Application Settings ===
APP_NAME = "Hike Planner API"
APP_VERSION = "1.0.0"
