"""Application configuration with environment variables."""

import json

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version
    VERSION: str = "0.1.0"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 24

    # Password hashing cost (lower only in tests)
    BCRYPT_ROUNDS: int = 12

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend + branding (template interpolation)
    FRONTEND_URL: str = "http://localhost:3000"
    COMPANY_NAME: str = "Ideal Plots"
    SUPPORT_EMAIL: str = "support@idealplots.in"

    # Email transport (SMTP)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False  # True = implicit TLS (465), False = STARTTLS
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    SMTP_FROM_EMAIL: str = ""
    SMTP_FROM_NAME: str = "Ideal Plots"
    EMAIL_TIMEOUT_SECONDS: float = 15.0

    # SMS transport (MSG91)
    MSG91_AUTH_KEY: str = ""
    MSG91_SENDER_ID: str = "IDEALP"
    MSG91_ROUTE: str = "4"
    MSG91_COUNTRY: str = "91"
    MSG91_FLOW_URL: str = "https://control.msg91.com/api/v5/flow/"
    MSG91_SEND_URL: str = "https://api.msg91.com/api/sendhttp.php"
    MSG91_TEMPLATE_IDS: str = ""  # JSON object: {"phone_verification": "<dlt id>", ...}
    SMS_TIMEOUT_SECONDS: float = 15.0

    # Audit / DPDPA
    SECURITY_SALT: str = "default_salt"  # Pepper for PII hashing in audit values

    # Enquiry routing fallback when system_settings has no auto_assign_agents row
    AUTO_ASSIGN_AGENTS: bool = False

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting
    RATE_LIMIT_AUTH: int = 5  # Login / verification resend, per minute
    RATE_LIMIT_API: int = 60  # General API, per minute
    RATE_LIMIT_ENQUIRY: str = "5/15 minutes"  # Public enquiry submission, per IP

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def msg91_template_ids(self) -> dict[str, str]:
        """Parse MSG91_TEMPLATE_IDS (DLT template id per template name)."""
        if not self.MSG91_TEMPLATE_IDS:
            return {}
        try:
            parsed = json.loads(self.MSG91_TEMPLATE_IDS)
        except ValueError:
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {str(k): str(v) for k, v in parsed.items() if v}

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV not in ("dev", "test")


settings = Settings()
