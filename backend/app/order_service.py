from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from urllib.error import HTTPError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .json_log import json_log


class OrderServiceError(Exception):
    """
    A failed call to the order service.
    `status_code` is None when no HTTP response came back (connection error, timeout).
    """

    def __init__(self, status_code: Optional[int], messages: Optional[List[str]] = None):
        self.status_code = status_code
        self.messages = list(messages or [])
        super().__init__(f"order service error {status_code}: {'; '.join(self.messages) or 'no details'}")


def _error_messages(body: str) -> List[str]:
    try:
        data = json.loads(body or "")
    except ValueError:
        return [body.strip()] if (body or "").strip() else []
    if not isinstance(data, dict):
        return []
    out = []
    for e in data.get("errors") or []:
        if isinstance(e, dict):
            msg = e.get("msg") or e.get("message")
            if msg:
                out.append(str(msg))
        elif e:
            out.append(str(e))
    if not out:
        msg = data.get("message") or data.get("detail")
        if msg:
            out.append(str(msg))
    return out


class OrderServiceClient:
    def __init__(self, base_url: str, token: str = "", timeout_s: float = 10.0):
        self.base_url = (base_url or "").strip().rstrip("/")
        self.token = (token or "").strip()
        self.timeout_s = max(0.2, float(timeout_s or 10.0))

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, payload=None) -> dict:
        if not self.base_url:
            raise OrderServiceError(None, ["missing order service url"])
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = Request(f"{self.base_url}{path}", data=data, headers=self._headers(), method=method)
        if data is not None:
            req.add_header("Content-Type", "application/json")
        try:
            with urlopen(req, timeout=self.timeout_s) as resp:
                body = resp.read().decode("utf-8")
        except HTTPError as ex:
            try:
                err_body = ex.read().decode("utf-8", errors="replace")
            except OSError:
                err_body = ""
            raise OrderServiceError(ex.code, _error_messages(err_body))
        except OSError as ex:
            # URLError, refused connections and socket timeouts all land here.
            raise OrderServiceError(None, [str(getattr(ex, "reason", None) or ex)])
        if not body.strip():
            return {}
        try:
            res = json.loads(body)
        except ValueError:
            return {}
        return res if isinstance(res, dict) else {"data": res}

    def fetch_order(self, order_id) -> dict:
        res = self._request("GET", f"/api/orders/{quote(str(order_id), safe='')}")
        data = res.get("data") if "data" in res else res
        return data if isinstance(data, dict) else {}

    def fetch_exchange_rate(self, default: Decimal) -> Decimal:
        """Business exchange rate (Riel per USD); `default` when unset or unreachable."""
        try:
            res = self._request("GET", "/api/settings")
        except OrderServiceError as ex:
            json_log("warning", "order_service.rate_fallback", reason=str(ex), rate=default)
            return default
        business = ((res.get("data") or {}).get("business") or {}) if isinstance(res.get("data"), dict) else {}
        raw = business.get("exchangeRate")
        try:
            rate = Decimal(str(raw))
        except (InvalidOperation, ValueError):
            rate = None
        if rate is None or not rate.is_finite() or rate <= 0:
            json_log("warning", "order_service.rate_fallback", reason="exchangeRate not set", rate=default)
            return default
        return rate

    def pay_order(self, order_id, payload: dict) -> dict:
        return self._request("PATCH", f"/api/orders/{quote(str(order_id), safe='')}/pay", payload)
