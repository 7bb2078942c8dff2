import logging
import os
from decimal import Decimal, InvalidOperation

from pydantic import Field, field_validator, model_validator  # type: ignore[import-not-found]
from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore[import-not-found]

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application configuration using Pydantic v2."""

    model_config = SettingsConfigDict(
        env_file=[".env.local", ".env.development", ".env"],
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields to avoid validation errors
    )

    # Application
    APP_NAME: str = "Testnet Faucet"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")

    # Persistent store
    DATABASE_URL: str = Field(default="")

    # Operating account
    RPC_URL: str = Field(default="")
    PRIVATE_KEY: str = Field(default="")
    PRIVATE_KEY_ENCRYPTED: bool = Field(default=False)
    ENCRYPTION_KEY: str = Field(default="")
    NETWORK_NAME: str = Field(default="Base Sepolia")
    CURRENCY_SYMBOL: str = Field(default="ETH")

    # Disbursement policy
    FAUCET_AMOUNT: str = Field(default="0.001")
    RATE_LIMIT_HOURS: int = Field(default=24, gt=0)
    SUBMISSION_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)
    RECEIPT_TIMEOUT_SECONDS: float = Field(default=90.0, gt=0)

    # Verification
    RECAPTCHA_SECRET_KEY: str = Field(default="")

    # Address leases
    REDIS_URL: str | None = Field(default=None)
    ADDRESS_LOCK_WAIT_SECONDS: float = Field(default=30.0, gt=0)
    ADDRESS_LOCK_TTL_SECONDS: float = Field(default=60.0, gt=0)

    # API
    API_HOST: str = Field(default="127.0.0.1")
    API_PORT: int = Field(default=3001)
    API_PREFIX: str = Field(default="/api/v1")

    # Sentry (monitoring)
    SENTRY_DSN: str | None = Field(default=None)
    SENTRY_ENVIRONMENT: str | None = Field(default=None)

    def __init__(self, **kwargs):
        """Initialize settings with backward compatibility."""
        # Handle DB_PATH -> DATABASE_URL mapping
        if "DB_PATH" in kwargs and "DATABASE_URL" not in kwargs:
            kwargs["DATABASE_URL"] = f"sqlite:///{kwargs.pop('DB_PATH')}"

        super().__init__(**kwargs)

    @field_validator("FAUCET_AMOUNT")
    @classmethod
    def validate_faucet_amount(cls, v: str) -> str:
        """Faucet amount must be a positive decimal string."""
        try:
            amount = Decimal(v)
        except InvalidOperation as e:
            raise ValueError(f"FAUCET_AMOUNT is not a decimal: {v!r}") from e
        if not amount.is_finite() or amount <= 0:
            raise ValueError("FAUCET_AMOUNT must be positive")
        return v

    @model_validator(mode="after")
    def check_timeouts(self) -> "Settings":
        """The submission deadline must leave room for the receipt wait."""
        if self.SUBMISSION_TIMEOUT_SECONDS <= self.RECEIPT_TIMEOUT_SECONDS:
            raise ValueError(
                "SUBMISSION_TIMEOUT_SECONDS must be greater than RECEIPT_TIMEOUT_SECONDS"
            )
        return self

    def configure_for_environment(self) -> None:
        """Configure settings based on environment - call this explicitly after creation."""
        # Handle legacy DB_PATH environment variable
        if not self.DATABASE_URL and os.getenv("DB_PATH"):
            self.DATABASE_URL = f"sqlite:///{os.getenv('DB_PATH')}"

        if not self.DATABASE_URL:
            if self.ENVIRONMENT == "production":
                raise ConfigurationError("DATABASE_URL must be set in production environment")
            # In development, use SQLite
            self.DATABASE_URL = "sqlite:///./faucet.db"
        elif self.DATABASE_URL.startswith("postgres://"):
            # SQLAlchemy needs postgresql://
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        # Set Sentry environment if not explicitly set
        if not self.SENTRY_ENVIRONMENT:
            self.SENTRY_ENVIRONMENT = self.ENVIRONMENT

    def validate_required(self) -> None:
        """Fail fast when the operating account cannot be configured."""
        missing = [name for name in ("RPC_URL", "PRIVATE_KEY") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        if self.PRIVATE_KEY_ENCRYPTED and not self.ENCRYPTION_KEY:
            raise ConfigurationError("ENCRYPTION_KEY is required when PRIVATE_KEY_ENCRYPTED is set")

        if not self.RECAPTCHA_SECRET_KEY:
            if self.ENVIRONMENT == "production":
                raise ConfigurationError("RECAPTCHA_SECRET_KEY must be set in production")
            logger.warning("RECAPTCHA_SECRET_KEY not set - every verification will be rejected")

    @property
    def faucet_amount(self) -> Decimal:
        return Decimal(self.FAUCET_AMOUNT)

    def signing_key(self) -> str:
        """Return the operating account's private key in plain form."""
        if not self.PRIVATE_KEY_ENCRYPTED:
            return self.PRIVATE_KEY

        from .utils.encryption import EncryptionService

        return EncryptionService(self.ENCRYPTION_KEY).decrypt(self.PRIVATE_KEY)


# Create settings instance
settings = Settings()


def initialize_settings():
    """Initialize and configure settings - must be called before using settings."""
    settings.configure_for_environment()
    return settings
