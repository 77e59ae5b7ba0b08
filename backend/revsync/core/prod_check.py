"""
Startup safety checks for APP_ENV=prod.
Any failure raises RuntimeError and the application does not start.
"""
from revsync.core.config import settings

# Values treated as insecure defaults in production
INSECURE_DEFAULTS = {
    "JWT_SECRET_KEY": "change_me_jwt_secret",
    "CRON_SECRET": "change_me_cron_secret",
}


def validate_production_config() -> None:
    """Reject wildcard CORS, default secrets and a missing billing API key in production."""
    if (getattr(settings, "app_env", "dev") or "dev").strip().lower() != "prod":
        return

    errors: list[str] = []

    if not (settings.cors_origins or "").strip():
        errors.append("CORS_ORIGINS must not be empty in production.")
    elif settings.cors_origins.strip() == "*":
        errors.append(
            "CORS_ORIGINS must not be '*' in production. "
            "Configure an explicit list of origins (e.g. https://app.example.com)."
        )

    if (settings.jwt_secret_key or "").strip() in ("", INSECURE_DEFAULTS["JWT_SECRET_KEY"]):
        errors.append("JWT_SECRET_KEY must be set and must not use the default value in production.")
    if (settings.cron_secret or "").strip() in ("", INSECURE_DEFAULTS["CRON_SECRET"]):
        errors.append("CRON_SECRET must be set and must not use the default value in production.")

    if not (settings.billing_api_key or "").strip():
        errors.append("BILLING_API_KEY must be set in production.")

    db_url = (getattr(settings, "database_url", "") or "").strip().lower()
    if db_url.startswith("sqlite"):
        errors.append("DATABASE_URL must not point to SQLite in production.")
    if db_url.startswith("postgresql"):
        postgres_pwd = (getattr(settings, "postgres_password", "") or "").strip()
        if not postgres_pwd or "change_me" in postgres_pwd:
            errors.append("POSTGRES_PASSWORD must be set and must not use a placeholder in production.")

    if errors:
        raise RuntimeError("Production configuration invalid:\n" + "\n".join(f"  - {e}" for e in errors))
