import os
from decimal import Decimal, InvalidOperation
from typing import List

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DEFAULT_RIEL_RATE = Decimal("4100")


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def _decimal(self, raw: str, *, default: Decimal) -> Decimal:
        try:
            v = Decimal((raw or "").strip())
        except (InvalidOperation, ValueError):
            return default
        return v if v.is_finite() and v > 0 else default

    def _float(self, raw: str, *, default: float) -> float:
        try:
            return float((raw or "").strip())
        except ValueError:
            return default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        # Restaurant order service (orders + business settings).
        self.api_base_url = (os.getenv("POS_API_BASE_URL") or "http://localhost:5000").strip().rstrip("/")
        self.api_token = (os.getenv("POS_API_TOKEN") or "").strip()
        # Used when the order service does not report a business exchange rate.
        self.riel_exchange_rate = self._decimal(os.getenv("RIEL_EXCHANGE_RATE", ""), default=DEFAULT_RIEL_RATE)
        self.session_db_path = (os.getenv("PAYMENT_SESSION_DB") or "").strip() or os.path.join(ROOT, "pos-payments.sqlite")
        self.order_service_timeout_s = self._float(os.getenv("ORDER_SERVICE_TIMEOUT_S", ""), default=10.0)
        # Comma-separated list of allowed CORS origins for the cashier screen.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"

settings = Settings()
