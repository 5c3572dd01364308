from typing import Optional

from .commit_gateway import CommitGateway
from .config import settings
from .order_service import OrderServiceClient
from .payment_sessions import SessionStore

# One instance of each per process; the gateway's in-flight guard relies on it.
_store: Optional[SessionStore] = None
_client: Optional[OrderServiceClient] = None
_gateway: Optional[CommitGateway] = None


def get_session_store() -> SessionStore:
    global _store
    if _store is None:
        _store = SessionStore(settings.session_db_path)
    return _store


def get_order_client() -> OrderServiceClient:
    global _client
    if _client is None:
        _client = OrderServiceClient(
            settings.api_base_url,
            token=settings.api_token,
            timeout_s=settings.order_service_timeout_s,
        )
    return _client


def get_gateway() -> CommitGateway:
    global _gateway
    if _gateway is None:
        _gateway = CommitGateway(get_order_client(), get_session_store())
    return _gateway
