import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

COOKIE_SECURE = _get_bool(os.getenv("COOKIE_SECURE"), default=APP_ENV.lower() == "production")
CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])

DATABASE_URL = os.getenv("DATABASE_URL", "")

SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))

JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRES_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "15"))
REFRESH_TOKEN_EXPIRES_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", "7"))

DATA_FEED_BASE_URL = os.getenv(
    "DATA_FEED_BASE_URL",
    "https://fapublicdata.blob.core.windows.net/fa-public-data",
).rstrip("/")
DATA_FEED_TIMEOUT_SECONDS = float(os.getenv("DATA_FEED_TIMEOUT_SECONDS", "15"))

PROTECTED_PATH_PREFIXES = tuple(_get_list(os.getenv("PROTECTED_PATH_PREFIXES"), ["/admin", "/downloads"]))
LOGIN_PATH = os.getenv("LOGIN_PATH", "/login")
DEFAULT_LANDING_PATH = os.getenv("DEFAULT_LANDING_PATH", "/dashboard")

ACCESS_TOKEN_COOKIE = "token"
REFRESH_TOKEN_COOKIE = "refreshToken"
REFRESH_TOKEN_COOKIE_PATH = "/api/auth/refresh"
PROVIDER_ACCESS_COOKIE = "sb-access-token"
PROVIDER_REFRESH_COOKIE = "sb-refresh-token"

REQUIRED_SETTINGS = (
    "DATABASE_URL",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "JWT_SECRET",
    "JWT_REFRESH_SECRET",
)


def validate_runtime_config() -> None:
    missing = [name for name in REQUIRED_SETTINGS if not globals()[name]]
    if missing:
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")
    if JWT_SECRET == JWT_REFRESH_SECRET:
        raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be different.")
