from __future__ import annotations

import os


def _load_dotenv_if_present() -> None:
    """
    Load environment variables from a local `.env` file (dev convenience).

    Production deployments should set real environment variables instead.
    """
    try:
        from dotenv import load_dotenv

        # Do not override existing environment variables.
        load_dotenv(override=False)
    except ImportError:
        return


_load_dotenv_if_present()


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        v = int(raw or default)
    except ValueError:
        v = default
    if v < lo:
        v = lo
    if v > hi:
        v = hi
    return v


def _env_flag(name: str, default: bool = False) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def database_url() -> str:
    url = os.environ.get("DATABASE_URL") or "sqlite:///./local.db"
    # Some managed providers still supply `postgres://...` which SQLAlchemy treats as invalid.
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def jwt_secret() -> str:
    return os.environ.get("JWT_SECRET") or "dev-secret-change-me"


def is_local_dev() -> bool:
    """
    We treat the app as "local dev" when DATABASE_URL is not set, because
    `database_url()` falls back to sqlite in that case.
    """
    return not (os.environ.get("DATABASE_URL") or "").strip()


def app_env() -> str:
    """
    Application environment marker:
    - local (default when running with sqlite fallback)
    - staging
    - prod
    """
    raw = (os.environ.get("APP_ENV") or "").strip().lower()
    if raw:
        return raw
    return "local" if is_local_dev() else "prod"


def allowed_hosts() -> list[str]:
    """
    Comma-separated list for TrustedHost middleware.
    Example: ALLOWED_HOSTS=api.example.com,example.com
    """
    raw = (os.environ.get("ALLOWED_HOSTS") or "").strip()
    if not raw:
        return ["*"]
    hosts = [h.strip() for h in raw.split(",") if h.strip()]
    return hosts or ["*"]


def cors_origins() -> list[str]:
    raw = (os.environ.get("CORS_ORIGINS") or "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
        "http://127.0.0.1:8080",
    ]


def enforce_secure_secrets() -> None:
    """
    Fail-fast in production if dangerous defaults are still in use.
    """
    if app_env() in {"prod", "production"}:
        if jwt_secret() == "dev-secret-change-me":
            raise RuntimeError("JWT_SECRET must be set in production (default dev secret detected)")


# -----------------------
# Uploads
# -----------------------
def uploads_dir() -> str:
    return os.environ.get("UPLOADS_DIR") or os.path.join(os.path.dirname(__file__), "..", "uploads")


def max_upload_image_bytes() -> int:
    # Default: 5 MB per image.
    return _env_int("MAX_UPLOAD_IMAGE_BYTES", 5 * 1024 * 1024, lo=1024, hi=50 * 1024 * 1024)


# -----------------------
# Listings
# -----------------------
def free_post_limit() -> int:
    """
    Free (non-packaged) listings allowed per user per window.
    Per-user overrides and the admin setting take precedence over this value.
    """
    return _env_int("FREE_POST_LIMIT", 5, lo=0, hi=10_000)


def free_post_period_days() -> int:
    return _env_int("FREE_POST_PERIOD_DAYS", 30, lo=1, hi=3650)


def default_page_limit() -> int:
    return _env_int("DEFAULT_PAGE_LIMIT", 20, lo=1, hi=max_page_limit())


def max_page_limit() -> int:
    return _env_int("MAX_PAGE_LIMIT", 100, lo=1, hi=1000)


def location_match_mode() -> str:
    """
    How sector/mohalla/landmark filters compare against stored values:
    - "ci" (default): case-insensitive equality on the trimmed text
    - "slug": equality on slug-normalized columns
    """
    raw = (os.environ.get("LOCATION_MATCH") or "").strip().lower()
    return raw if raw in {"ci", "slug"} else "ci"


def public_include_pending() -> bool:
    """
    When enabled, public browse also shows listings still awaiting moderation.
    """
    return _env_flag("PUBLIC_INCLUDE_PENDING", False)


# -----------------------
# Email
# -----------------------
def email_backend() -> str:
    """
    Email backend selector:
    - "auto" (default): prefer Brevo if configured, else SMTP
    - "brevo": force Brevo (requires BREVO_API_KEY + sender)
    - "smtp": force SMTP (requires SMTP_HOST + sender)
    - "console": log email contents instead of sending (dev-only)
    """
    return (os.environ.get("EMAIL_BACKEND") or "auto").strip().lower()


def brevo_api_key() -> str:
    return (os.environ.get("BREVO_API_KEY") or "").strip()


def brevo_from_email() -> str:
    return (os.environ.get("BREVO_FROM") or "").strip()


def brevo_sender_name() -> str:
    return (os.environ.get("BREVO_SENDER_NAME") or "PropertyHub").strip()


def smtp_host() -> str:
    return (os.environ.get("SMTP_HOST") or "").strip()


def smtp_port() -> int:
    return _env_int("SMTP_PORT", 587, lo=1, hi=65535)


def smtp_user() -> str:
    return (os.environ.get("SMTP_USER") or "").strip()


def smtp_pass() -> str:
    return (os.environ.get("SMTP_PASS") or "").strip()


def smtp_from_email() -> str:
    # Allow either SMTP_FROM or BREVO_FROM as the sender address.
    return ((os.environ.get("SMTP_FROM") or "").strip() or brevo_from_email() or smtp_user()).strip()


def public_site_url() -> str:
    """
    Base URL of the web client, used for links inside notification emails.
    """
    return (os.environ.get("PUBLIC_SITE_URL") or "http://localhost:8080").strip().rstrip("/")
