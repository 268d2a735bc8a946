# core/config.py
from dataclasses import dataclass
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import NotConfiguredError


class Settings(BaseSettings):
    # ────────────────────────────────
    # 1. APP & ENVIRONMENT
    # ────────────────────────────────
    PROJECT_NAME: str = "RemindPay"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    PORT: int = Field(default=5000)

    # ────────────────────────────────
    # 2. FRONTEND / CORS
    # ────────────────────────────────
    ALLOWED_ORIGIN: str = Field(
        default="http://localhost:8080",
        description="Origin allowed to call the API (Vite dev server by default)"
    )

    # ────────────────────────────────
    # 3. FIREBASE / FIRESTORE
    # ────────────────────────────────
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = Field(
        default=None,
        description="Path to Firebase service account JSON"
    )
    FIREBASE_CREDENTIALS: Optional[str] = Field(
        default=None,
        description="Base64-encoded Firebase service account JSON"
    )

    # ────────────────────────────────
    # 4. RAZORPAY
    # ────────────────────────────────
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    RAZORPAY_TIMEOUT_SECONDS: float = 15.0

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@dataclass(frozen=True)
class PaymentConfig:
    """Razorpay credentials resolved once at startup.

    Handlers never check individual settings; they ask ``is_configured`` or
    call ``require_configured()``.
    """

    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    base_url: str = "https://api.razorpay.com/v1"
    timeout: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentConfig":
        return cls(
            key_id=settings.RAZORPAY_KEY_ID or None,
            key_secret=settings.RAZORPAY_KEY_SECRET or None,
            webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET or None,
            base_url=settings.RAZORPAY_BASE_URL.rstrip("/"),
            timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def require_configured(self) -> "PaymentConfig":
        if not self.is_configured:
            raise NotConfiguredError("Payment gateway is not configured on server")
        return self

    @property
    def signing_secret(self) -> Optional[str]:
        """Secret for client-submitted checkout signatures."""
        return self.key_secret

    @property
    def webhook_signing_secret(self) -> Optional[str]:
        """Webhook secret, falling back to the key secret."""
        return self.webhook_secret or self.key_secret


# Create singleton
settings = Settings()
