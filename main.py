import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db, init_db
from hooks import DashboardHooks, TransactionListHook, fetch_cache
from scheduler import SchedulerManager
from schemas import (
    CardControlsIn,
    CardIn,
    CardLimitsIn,
    CardOut,
    ExchangeIn,
    InvestIn,
    NotificationOut,
    PayBillIn,
    PinIn,
    ProfileIn,
    ProfileOut,
    QuickActionOut,
    SendMoneyIn,
    SessionIn,
    SessionOut,
    TopUpIn,
    TransactionIn,
    TransactionOut,
    TransactionPinIn,
    TransactionUpdate,
)
from security import read_user_token
from services import (
    AnalyticsService,
    CardService,
    NotificationService,
    PaymentService,
    ProfileService,
    SessionService,
    TransactionService,
)
from store import FetchResult, TransactionStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Paymee Ledger")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def current_user_id(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user_id = read_user_token(token.strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id


def _parse_moment(raw: Optional[str], name: str) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date") from exc


def window_bounds(request: Request) -> tuple[Optional[datetime], Optional[datetime]]:
    start = _parse_moment(request.query_params.get("start"), "start")
    end = _parse_moment(request.query_params.get("end"), "end")
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    return start, end


def unwrap_result(result: FetchResult):
    if not result.ok:
        raise HTTPException(status_code=503, detail=str(result.error))
    data = result.data
    if isinstance(data, list):
        return [item.model_dump() if hasattr(item, "model_dump") else item for item in data]
    return data.model_dump() if hasattr(data, "model_dump") else data


def quick_action_response(outcome) -> QuickActionOut:
    txn, notification, card = outcome
    details = json.loads(txn.metadata_json) if txn.metadata_json else {}
    return QuickActionOut(
        transaction=TransactionOut.model_validate(txn),
        notification_id=notification.id,
        card_balance=card.balance if card is not None else None,
        details=details,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/analytics/monthly-trend")
def api_monthly_trend(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = window_bounds(request)
    return unwrap_result(AnalyticsService(db, user_id).monthly_trend(start, end))


@app.get("/api/analytics/category-spending")
def api_category_spending(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = window_bounds(request)
    return unwrap_result(AnalyticsService(db, user_id).category_spending(start, end))


@app.get("/api/analytics/overview")
def api_overview(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = window_bounds(request)
    return unwrap_result(AnalyticsService(db, user_id).overview(start, end))


@app.get("/api/analytics/dashboard-stats")
def api_dashboard_stats(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = window_bounds(request)
    return unwrap_result(AnalyticsService(db, user_id).dashboard_stats(start, end))


@app.get("/api/analytics/payment-methods")
def api_payment_methods(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = window_bounds(request)
    return unwrap_result(AnalyticsService(db, user_id).payment_method_usage(start, end))


@app.get("/api/analytics/transaction-stats")
def api_transaction_stats(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return unwrap_result(AnalyticsService(db, user_id).transaction_stats())


@app.get("/api/dashboard")
def api_dashboard(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = window_bounds(request)
    try:
        hooks = DashboardHooks(AnalyticsService(db, user_id), start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return hooks.refresh_all().snapshot()


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    params = request.query_params
    hook = TransactionListHook(TransactionStore(db, user_id, cache=fetch_cache))
    hook.refresh()
    if hook.error:
        raise HTTPException(status_code=503, detail=hook.error)
    changes = {
        field: params[field]
        for field in ("type", "category", "status", "search", "date_range", "sort_by")
        if params.get(field)
    }
    try:
        hook.set_query(**changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "items": [
            TransactionOut.model_validate(txn).model_dump(mode="json")
            for txn in hook.transactions
        ],
        "total_count": hook.total_count,
        "filtered_count": hook.filtered_count,
        "stats": hook.stats.model_dump(),
    }


@app.get("/api/transactions/recent")
def api_recent_transactions(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    hook = TransactionListHook(TransactionStore(db, user_id, cache=fetch_cache))
    hook.refresh()
    if hook.error:
        raise HTTPException(status_code=503, detail=hook.error)
    return [
        TransactionOut.model_validate(txn).model_dump(mode="json")
        for txn in hook.recent_transactions
    ]


@app.post("/api/transactions", status_code=201, response_model=TransactionOut)
def api_create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.patch("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/cards", response_model=list[CardOut])
def api_cards(db: Session = Depends(get_db), user_id: str = Depends(current_user_id)):
    return CardService(db, user_id).list_all()


@app.post("/api/cards", status_code=201, response_model=CardOut)
def api_add_card(
    data: CardIn, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return CardService(db, user_id).add(data)


@app.delete("/api/cards/{card_id}", status_code=204)
def api_delete_card(
    card_id: int, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    try:
        CardService(db, user_id).delete(card_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/cards/{card_id}/block", response_model=CardOut)
def api_block_card(
    card_id: int, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    try:
        return CardService(db, user_id).set_blocked(card_id, True)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/cards/{card_id}/unblock", response_model=CardOut)
def api_unblock_card(
    card_id: int, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    try:
        return CardService(db, user_id).set_blocked(card_id, False)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.patch("/api/cards/{card_id}/controls", response_model=CardOut)
def api_card_controls(
    card_id: int,
    data: CardControlsIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return CardService(db, user_id).update_controls(card_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.patch("/api/cards/{card_id}/limits", response_model=CardOut)
def api_card_limits(
    card_id: int,
    data: CardLimitsIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return CardService(db, user_id).update_limits(card_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/cards/{card_id}/pin", response_model=CardOut)
def api_card_pin(
    card_id: int,
    data: PinIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return CardService(db, user_id).set_pin(card_id, data.pin)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/cards/{card_id}/pin/verify")
def api_card_pin_verify(
    card_id: int,
    data: PinIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return {"valid": CardService(db, user_id).verify_pin(card_id, data.pin)}
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/profile", response_model=ProfileOut)
def api_profile(db: Session = Depends(get_db), user_id: str = Depends(current_user_id)):
    return ProfileService(db, user_id).get_or_create()


@app.patch("/api/profile", response_model=ProfileOut)
def api_update_profile(
    data: ProfileIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return ProfileService(db, user_id).update(data)


@app.post("/api/profile/transaction-pin", response_model=ProfileOut)
def api_set_transaction_pin(
    data: TransactionPinIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return ProfileService(db, user_id).set_transaction_pin(data.pin, data.current_pin)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/profile/transaction-pin/verify")
def api_verify_transaction_pin(
    data: PinIn, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return {"valid": ProfileService(db, user_id).verify_transaction_pin(data.pin)}


def _run_action(action, data):
    try:
        return quick_action_response(action(data))
    except ValueError as exc:
        status = 404 if "not found" in str(exc).lower() else 400
        raise HTTPException(status_code=status, detail=str(exc)) from exc


@app.post("/api/actions/send-money", status_code=201, response_model=QuickActionOut)
def api_send_money(
    data: SendMoneyIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return _run_action(PaymentService(db, user_id).send_money, data)


@app.post("/api/actions/pay-bill", status_code=201, response_model=QuickActionOut)
def api_pay_bill(
    data: PayBillIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return _run_action(PaymentService(db, user_id).pay_bill, data)


@app.post("/api/actions/top-up", status_code=201, response_model=QuickActionOut)
def api_top_up(
    data: TopUpIn, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return _run_action(PaymentService(db, user_id).top_up, data)


@app.post("/api/actions/invest", status_code=201, response_model=QuickActionOut)
def api_invest(
    data: InvestIn, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return _run_action(PaymentService(db, user_id).invest, data)


@app.post("/api/actions/exchange", status_code=201, response_model=QuickActionOut)
def api_exchange(
    data: ExchangeIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return _run_action(PaymentService(db, user_id).exchange, data)


@app.get("/api/notifications", response_model=list[NotificationOut])
def api_notifications(
    limit: int = 20,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return NotificationService(db, user_id).list_recent(min(max(limit, 1), 100))


@app.get("/api/notifications/unread-count")
def api_unread_count(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return {"count": NotificationService(db, user_id).unread_count()}


@app.post("/api/notifications/read-all")
def api_mark_all_read(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return {"updated": NotificationService(db, user_id).mark_all_read()}


@app.post("/api/notifications/{notification_id}/read", response_model=NotificationOut)
def api_mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return NotificationService(db, user_id).mark_read(notification_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/notifications/{notification_id}", status_code=204)
def api_delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        NotificationService(db, user_id).delete(notification_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/notifications")
def api_delete_notifications(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return {"deleted": NotificationService(db, user_id).delete_all()}


@app.post("/api/sessions", status_code=201, response_model=SessionOut)
def api_create_session(
    data: SessionIn,
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    if data.user_agent is None:
        data = data.model_copy(
            update={"user_agent": request.headers.get("user-agent")}
        )
    if data.ip_address is None and request.client is not None:
        data = data.model_copy(update={"ip_address": request.client.host})
    try:
        return SessionService(db, user_id).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/sessions", response_model=list[SessionOut])
def api_sessions(db: Session = Depends(get_db), user_id: str = Depends(current_user_id)):
    return SessionService(db, user_id).list_active()


@app.post("/api/sessions/touch", response_model=SessionOut)
def api_touch_session(
    data: SessionIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return SessionService(db, user_id).touch(data.session_token)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/sessions/{session_id}", status_code=204)
def api_revoke_session(
    session_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        SessionService(db, user_id).revoke(session_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/sessions/{session_id}/revoke-others")
def api_revoke_other_sessions(
    session_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return {"revoked": SessionService(db, user_id).revoke_others(session_id)}
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def main():
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
