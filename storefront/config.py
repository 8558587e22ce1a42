import os
from dataclasses import dataclass
from pathlib import Path
import json
from typing import List, Optional


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    currency: str
    khalti_secret_key: str
    khalti_gateway_url: str
    backend_url: str
    frontend_url: str
    gateway_timeout: float = 15.0
    otp_ttl_seconds: int = 600

    @property
    def verify_url(self) -> str:
        return f"{self.backend_url.rstrip('/')}/api/payment/verify"

    def order_page_url(self, order_id: Optional[str]) -> str:
        base = self.frontend_url.rstrip("/")
        if not order_id:
            return f"{base}/orders"
        return f"{base}/order/{order_id}"

    def missing_gateway_settings(self) -> List[str]:
        required = {
            "KHALTI_SECRET_KEY": self.khalti_secret_key,
            "KHALTI_GATEWAY_URL": self.khalti_gateway_url,
            "BACKEND_URL": self.backend_url,
        }
        return [k for k, v in required.items() if not v]


def validate_currency(value: Optional[str]) -> str:
    v = (value or "NPR").strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def _load_settings_file(path: Optional[Path] = None) -> dict:
    path = path or Path(__file__).resolve().parents[1] / "data" / "settings.json"
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"settings file {path} is not valid JSON: {exc}") from exc


def load_env(settings_path: Optional[Path] = None) -> AppConfig:
    # data/settings.json wins, environment is the fallback
    s = _load_settings_file(settings_path)

    def pick(key: str, default: str = "") -> str:
        return str(s.get(key) or os.getenv(key) or default)

    return AppConfig(
        database_url=pick("DATABASE_URL", "sqlite:///data/storefront.db"),
        secret_key=pick("SECRET_KEY", "dev_secret"),
        log_level=pick("LOG_LEVEL", "INFO").upper(),
        currency=validate_currency(s.get("CURRENCY") or os.getenv("CURRENCY")),
        khalti_secret_key=pick("KHALTI_SECRET_KEY"),
        khalti_gateway_url=pick("KHALTI_GATEWAY_URL", "https://dev.khalti.com").rstrip("/"),
        backend_url=pick("BACKEND_URL", "http://127.0.0.1:5000").rstrip("/"),
        frontend_url=pick("FRONTEND_URL", "http://127.0.0.1:5173").rstrip("/"),
        gateway_timeout=float(pick("KHALTI_TIMEOUT", "15")),
        otp_ttl_seconds=int(pick("OTP_TTL_SECONDS", "600")),
    )
