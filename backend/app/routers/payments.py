from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..commit_gateway import CommitGateway
from ..config import settings
from ..deps import get_gateway, get_order_client, get_session_store
from ..order_service import OrderServiceClient, OrderServiceError
from ..orders import Order, OrderRecordError, order_from_record
from ..payment_panels import PanelEditor, PanelNotFoundError, PaymentPanel, PaymentSession
from ..payment_sessions import SessionStore, session_to_doc
from ..reconciliation import reconcile
from ..split_allocation import allocate_draft, allocate_final, allocate_split
from ..validation import SessionMode

router = APIRouter(prefix="/payments", tags=["payments"])

COMMIT_HTTP_STATUS = {
    "paid": 200,
    "invalid": 400,
    "validation": 400,
    "not_found": 404,
    "in_progress": 409,
    "conflict": 409,
    "transient": 503,
}


class ModeIn(BaseModel):
    mode: SessionMode


class PanelUpdateIn(BaseModel):
    field: str
    value: Any = None


class PanelsIn(BaseModel):
    panels: List[PaymentPanel]


def _load_order(client: OrderServiceClient, order_id: str) -> Order:
    try:
        rec = client.fetch_order(order_id)
    except OrderServiceError as ex:
        if ex.status_code == 404:
            raise HTTPException(status_code=404, detail="order not found")
        raise HTTPException(status_code=502, detail="order service unavailable")
    try:
        return order_from_record(rec)
    except OrderRecordError as ex:
        # Payment screen halts: nothing is computed from a partial order.
        raise HTTPException(status_code=422, detail=f"order record incomplete: {ex}")


def _rate(client: OrderServiceClient):
    return client.fetch_exchange_rate(settings.riel_exchange_rate)


def _is_paid(order: Order, gateway: CommitGateway) -> bool:
    if order.is_paid:
        # The order service reports it now; no need to remember it locally.
        gateway.forget_paid(order.id)
        return True
    return gateway.is_paid(order.id)


def _state(order: Order, session: Optional[PaymentSession], rate, gateway: Optional[CommitGateway] = None, paid: bool = False) -> dict:
    recon = reconcile(session.active_panels(), order.total, rate) if session is not None else None
    return {
        "order_id": order.id,
        "order": {
            "subtotal": str(order.subtotal),
            "tax": str(order.tax),
            "discount": str(order.discount),
            "total": str(order.total),
        },
        "exchange_rate": str(rate),
        "session": session_to_doc(session) if session is not None else None,
        "reconciliation": recon.as_dict() if recon is not None else None,
        "commit_in_flight": bool(gateway and gateway.is_in_flight(order.id)),
        "paid": paid,
    }


def _require_unpaid(order: Order, store: SessionStore, gateway: CommitGateway) -> None:
    if _is_paid(order, gateway):
        store.clear(order.id)
        raise HTTPException(status_code=409, detail="order is already paid")


def _edit(order_id: str, store: SessionStore, client: OrderServiceClient, gateway: CommitGateway, op):
    order = _load_order(client, order_id)
    _require_unpaid(order, store, gateway)
    rate = _rate(client)
    session = store.load_or_seed(order)
    editor = PanelEditor(session, on_change=lambda s: store.save(order.id, s))
    try:
        op(editor, order)
    except PanelNotFoundError as ex:
        raise HTTPException(status_code=404, detail=str(ex))
    except ValueError as ex:
        raise HTTPException(status_code=400, detail=str(ex))
    return _state(order, session, rate, gateway)


@router.get("/{order_id}/session")
def get_payment_session(
    order_id: str,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    """
    Restore the auto-saved session for the order, or seed a fresh one.
    A paid order has no session: `session` and `reconciliation` are null.
    """
    order = _load_order(client, order_id)
    if _is_paid(order, gateway):
        store.clear(order.id)
        return _state(order, None, _rate(client), gateway, paid=True)
    session = store.load_or_seed(order)
    return _state(order, session, _rate(client), gateway)


@router.delete("/{order_id}/session")
def cancel_payment_session(order_id: str, store: SessionStore = Depends(get_session_store)):
    store.clear(order_id)
    return {"ok": True}


@router.post("/{order_id}/mode")
def set_payment_mode(
    order_id: str,
    data: ModeIn,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    return _edit(order_id, store, client, gateway, lambda ed, order: ed.set_mode(data.mode, order_total=order.total))


@router.post("/{order_id}/panels")
def add_payment_panel(
    order_id: str,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    return _edit(order_id, store, client, gateway, lambda ed, order: ed.add_panel())


@router.put("/{order_id}/panels")
def replace_payment_panels(
    order_id: str,
    data: PanelsIn,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    return _edit(order_id, store, client, gateway, lambda ed, order: ed.set_panels(data.panels))


@router.patch("/{order_id}/panels/{panel_id}")
def update_payment_panel(
    order_id: str,
    panel_id: int,
    data: PanelUpdateIn,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    return _edit(order_id, store, client, gateway, lambda ed, order: ed.update_panel(panel_id, data.field, data.value))


@router.delete("/{order_id}/panels/{panel_id}")
def remove_payment_panel(
    order_id: str,
    panel_id: int,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    return _edit(order_id, store, client, gateway, lambda ed, order: ed.remove_panel(panel_id))


@router.get("/{order_id}/draft-receipt")
def draft_receipt(
    order_id: str,
    split_index: Optional[int] = Query(default=None, ge=0),
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    """
    Receipt preview from the uncommitted session. Nothing is sent to the order
    service; split figures are simulated from the live split panels.
    """
    order = _load_order(client, order_id)
    _require_unpaid(order, store, gateway)
    rate = _rate(client)
    session = store.load_or_seed(order)
    recon = reconcile(session.active_panels(), order.total, rate)
    out = {
        "receipt_type": "draft",
        "order_id": order.id,
        "mode": session.mode,
        "reconciliation": recon.as_dict(),
        "splits": [],
    }
    if session.mode == "split":
        if split_index is not None:
            try:
                out["splits"] = [allocate_split(order, split_index, split_panels=session.split_panels, rate=rate).as_dict()]
            except IndexError as ex:
                raise HTTPException(status_code=404, detail=str(ex))
        else:
            out["splits"] = [a.as_dict() for a in allocate_draft(order, session.split_panels, rate)]
    else:
        out["full"] = {
            "subtotal": str(order.subtotal),
            "tax": str(order.tax),
            "discount": str(order.discount),
            "total": str(order.total),
            "payment_methods": [p.model_dump() for p in session.full_panels],
        }
    return out


@router.get("/{order_id}/final-receipt")
def final_receipt(
    order_id: str,
    split_index: Optional[int] = Query(default=None, ge=0),
    client: OrderServiceClient = Depends(get_order_client),
):
    order = _load_order(client, order_id)
    if not order.is_paid:
        raise HTTPException(status_code=409, detail="order is not paid yet")
    rate = _rate(client)
    out = {"receipt_type": "final", "order_id": order.id, "split_bill": order.split_bill, "splits": []}
    if split_index is not None:
        try:
            out["splits"] = [allocate_split(order, split_index, rate=rate).as_dict()]
        except IndexError as ex:
            raise HTTPException(status_code=404, detail=str(ex))
    else:
        out["splits"] = [a.as_dict() for a in allocate_final(order, rate=rate)]
    return out


@router.post("/{order_id}/commit")
def commit_payment(
    order_id: str,
    store: SessionStore = Depends(get_session_store),
    client: OrderServiceClient = Depends(get_order_client),
    gateway: CommitGateway = Depends(get_gateway),
):
    order = _load_order(client, order_id)
    rate = _rate(client)
    # The stored session is committed as the cashier left it.
    session = store.load(order.id)
    if session is None and not _is_paid(order, gateway):
        raise HTTPException(status_code=404, detail="no open payment session for this order")
    result = gateway.commit(order, session, rate)
    return JSONResponse(status_code=COMMIT_HTTP_STATUS.get(result.status, 500), content=result.as_dict())
