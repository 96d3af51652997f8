"""
Startup checks for APP_ENV=prod.
Any failure raises RuntimeError and the application refuses to start.
"""
from progress_api.core.config import settings

# Values that must never reach production
INSECURE_DEFAULTS = {
    "JWT_SECRET_KEY": "change_me_jwt_secret",
}


def validate_production_config() -> None:
    """Reject CORS '*', default JWT secrets, SQLite and placeholder DB passwords in production."""
    if (getattr(settings, "app_env", "dev") or "dev").strip().lower() != "prod":
        return

    errors: list[str] = []

    if not (settings.cors_origins or "").strip():
        errors.append("CORS_ORIGINS must not be empty in production.")
    elif settings.cors_origins.strip() == "*":
        errors.append(
            "CORS_ORIGINS must not be '*' in production. "
            "Configure an explicit origin list (e.g. https://reports.example.com)."
        )

    if (settings.jwt_secret_key or "").strip() in ("", INSECURE_DEFAULTS["JWT_SECRET_KEY"]):
        errors.append("JWT_SECRET_KEY must be set to a non-default value in production.")

    db_url = (getattr(settings, "database_url", "") or "").strip()
    if db_url.lower().startswith("sqlite"):
        errors.append("DATABASE_URL must point at the LMS database (MySQL/PostgreSQL) in production, not SQLite.")
    if "change_me" in db_url:
        errors.append("DATABASE_URL must not contain the placeholder password (change_me) in production.")

    if int(getattr(settings, "rate_limit", 0) or 0) < 1:
        errors.append("RATE_LIMIT must be at least 1.")
    if int(getattr(settings, "max_records", 0) or 0) < 1:
        errors.append("MAX_RECORDS must be at least 1.")

    if errors:
        raise RuntimeError(
            "Invalid production configuration:\n  - " + "\n  - ".join(errors)
        )
