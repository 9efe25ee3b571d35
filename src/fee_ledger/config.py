"""Runtime configuration read from environment variables."""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _first_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class Settings:
    """Settings for the gateway, ledger, auth and notification layers."""
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    gateway: str = "razorpay"  # razorpay | simulator
    currency: str = "INR"
    gateway_timeout_seconds: float = 10.0
    trust_client_amount: bool = True
    reconcile_max_attempts: int = 3

    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    from_email: Optional[str] = None
    notify_email: Optional[str] = None

    rate_limit_enabled: bool = True
    create_order_rate_limit: str = "30/minute"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        smtp_user = _first_env("EMAIL_USER", "SMTP_USER")
        from_email = _first_env("EMAIL_USER", "FROM_EMAIL")
        return cls(
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            razorpay_webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET", ""),
            gateway=os.getenv("FEE_GATEWAY", "razorpay").lower(),
            currency=os.getenv("FEE_CURRENCY", "INR").upper(),
            gateway_timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10")),
            trust_client_amount=_env_bool("FEE_TRUST_CLIENT_AMOUNT", True),
            reconcile_max_attempts=max(int(os.getenv("RECONCILE_MAX_ATTEMPTS", "3")), 1),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            smtp_host=_first_env("EMAIL_HOST", "SMTP_HOST"),
            smtp_port=int(_first_env("EMAIL_PORT", "SMTP_PORT", default="587")),
            smtp_user=smtp_user,
            smtp_password=_first_env("EMAIL_PASS", "SMTP_PASS"),
            from_email=from_email,
            notify_email=_first_env("FEE_NOTIFY_EMAIL", default=from_email),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            create_order_rate_limit=os.getenv("CREATE_ORDER_RATE_LIMIT", "30/minute"),
        )


def get_settings() -> Settings:
    """Return settings for the current environment.

    Not cached: tests patch the environment between cases.
    """
    return Settings.from_env()
