"""Runtime settings for the checkout service.

Values come from ``STYLISH_*`` environment variables. ``PROTEAN_ENV`` keeps
its usual meaning (development, test, staging, production) and gates
behaviour that must never run in production.
"""

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str, default: str) -> str:
    return os.getenv(f"STYLISH_{name}", default)


def current_env() -> str:
    return (os.getenv("PROTEAN_ENV") or "development").lower()


@dataclass(frozen=True)
class Settings:
    database_uri: str = "sqlite:///stylish.db"
    gateway: str = "fake"
    tappay_partner_key: str = ""
    tappay_merchant_id: str = ""
    tappay_base_url: str = "https://sandbox.tappaysdk.com"
    gateway_timeout: float = 10.0
    capture_max_attempts: int = 3
    capture_backoff_base: float = 0.5
    capture_backoff_max: float = 4.0
    transaction_timeout_ms: int = 5000
    legacy_responses: bool = False
    env: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_uri=_env("DATABASE_URI", cls.database_uri),
            gateway=_env("GATEWAY", cls.gateway).lower(),
            tappay_partner_key=_env("TAPPAY_PARTNER_KEY", ""),
            tappay_merchant_id=_env("TAPPAY_MERCHANT_ID", ""),
            tappay_base_url=_env("TAPPAY_BASE_URL", cls.tappay_base_url),
            gateway_timeout=float(_env("GATEWAY_TIMEOUT", str(cls.gateway_timeout))),
            capture_max_attempts=int(_env("CAPTURE_MAX_ATTEMPTS", str(cls.capture_max_attempts))),
            capture_backoff_base=float(_env("CAPTURE_BACKOFF_BASE", str(cls.capture_backoff_base))),
            capture_backoff_max=float(_env("CAPTURE_BACKOFF_MAX", str(cls.capture_backoff_max))),
            transaction_timeout_ms=int(_env("TRANSACTION_TIMEOUT_MS", str(cls.transaction_timeout_ms))),
            legacy_responses=_env("LEGACY_RESPONSES", "").lower() in _TRUTHY,
            env=current_env(),
        )

    @property
    def is_production(self) -> bool:
        return self.env == "production"
