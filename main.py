import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from assistant import AdvisorError, get_advisor
from classification import classify, config_from_settings
from database import SessionLocal, init_db
from models import Chat, Goal, GoalStatus, Transaction, User
from periods import local_today, resolve_range
from projections import project_goal
from scheduler import SchedulerManager
from schemas import (
    ChartType,
    ChatClearIn,
    ChatMessageIn,
    ContributionIn,
    DataSharingIn,
    GoalIn,
    GoalUpdate,
    SimulationIn,
    SyncIn,
    TransactionPatch,
    UserIn,
)
from services import (
    AccountService,
    ChartService,
    ChatService,
    GoalService,
    InsightsService,
    RecordNotFound,
    SyncService,
    TransactionFilters,
    TransactionService,
    UserService,
)
from tokens import issue_access_token, resolve_access_token

logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance API")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = resolve_access_token(authorization[7:].strip())
    if user_id is None or db.get(User, user_id) is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id


def get_advisor_dep():
    return get_advisor()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def period_from_request(request: Request, when_missing: str = "6m"):
    raw = request.query_params.get("range")
    return resolve_range(when_missing if raw is None else raw)


def _parse_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date: {raw}") from exc


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "monthly_income": user.monthly_income,
        "has_bank_connected": user.has_bank_connected,
        "onboarding_complete": user.onboarding_complete,
    }


def transaction_payload(txn: Transaction) -> dict:
    result = classify(txn, config_from_settings())
    account = txn.account
    return {
        "id": txn.id,
        "plaid_transaction_id": txn.plaid_transaction_id,
        "date": txn.date.isoformat(),
        "name": txn.name,
        "merchant_name": txn.merchant_name,
        "amount": txn.amount,
        "category": txn.category,
        "flow": result.flow.value,
        "classified_category": result.category,
        "pending": txn.pending,
        "currency": txn.iso_currency_code,
        "payment_channel": txn.payment_channel,
        "is_anomaly": txn.is_anomaly,
        "is_recurring": txn.is_recurring,
        "ai_suggested_category": txn.ai_suggested_category,
        "tags": txn.tags,
        "account": {
            "id": account.id,
            "name": account.name,
            "mask": account.mask,
            "type": account.type,
        }
        if account
        else None,
    }


def goal_payload(goal: Goal, today: Optional[date] = None) -> dict:
    projection = project_goal(goal, today or local_today())
    return {
        "id": goal.id,
        "name": goal.name,
        "description": goal.description,
        "target_amount": goal.target_amount,
        "current_amount": goal.current_amount,
        "category": goal.category.value,
        "deadline": goal.deadline.isoformat() if goal.deadline else None,
        "priority": goal.priority.value,
        "status": goal.status.value,
        "currency": goal.currency,
        "monthly_contribution": goal.monthly_contribution,
        "completed_at": goal.completed_at.isoformat() if goal.completed_at else None,
        "progress": round(goal.progress, 2),
        "remaining_amount": goal.remaining_amount,
        "ai_tip": projection.tip,
        "estimated_completion": projection.estimated_completion.isoformat()
        if projection.estimated_completion
        else None,
    }


def chat_payload(chat: Chat) -> dict:
    return {
        "id": chat.id,
        "data_sharing": chat.data_sharing,
        "created_at": chat.created_at.isoformat(),
        "messages": [
            {
                "role": m.role.value,
                "content": m.content,
                "timestamp": m.timestamp.isoformat(),
            }
            for m in chat.messages
        ],
    }


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/users", status_code=201)
def create_user(payload: UserIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"user": user_payload(user), "access_token": issue_access_token(user.id)}


@app.get("/api/users/me")
def read_me(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    try:
        user = UserService(db).get(user_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return user_payload(user)


@app.get("/api/accounts")
def list_accounts(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return {"institutions": AccountService(db, user_id).grouped_by_institution()}


@app.post("/api/plaid/sync")
def plaid_sync(
    payload: SyncIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        counts = SyncService(db, user_id).sync(payload)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, **counts}


@app.post("/api/plaid/unlink")
def plaid_unlink(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        SyncService(db, user_id).unlink()
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True}


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    params = request.query_params
    account_raw = params.get("account_id")
    try:
        limit = min(max(int(params.get("limit", "50")), 1), 500)
        offset = max(int(params.get("offset", "0")), 0)
        account_id = int(account_raw) if account_raw else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid paging parameters") from exc
    filters = TransactionFilters(
        start_date=_parse_date(params.get("start_date")),
        end_date=_parse_date(params.get("end_date")),
        category=params.get("category") or None,
        account_id=account_id,
        search=params.get("search") or None,
    )
    items, total = TransactionService(db, user_id).list(
        filters, limit=limit, offset=offset
    )
    return {
        "transactions": [transaction_payload(txn) for txn in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@app.get("/api/transactions/latest")
def latest_transactions(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    items = TransactionService(db, user_id).latest()
    return {"transactions": [transaction_payload(txn) for txn in items]}


@app.post("/api/transactions/detect-anomalies")
def detect_anomalies(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    scan = TransactionService(db, user_id).detect_anomalies()
    return {"success": True, "changed": scan.changed, "anomalies_found": scan.flagged}


@app.get("/api/transactions/{transaction_id}")
def read_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_payload(txn)


@app.patch("/api/transactions/{transaction_id}")
def patch_transaction(
    transaction_id: int,
    payload: TransactionPatch,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, payload)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_payload(txn)


@app.get("/api/charts/cashflow")
def chart_cashflow(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    return {"range": period.slug, "data": ChartService(db, user_id).cashflow(period)}


@app.get("/api/charts/expense-breakdown")
def chart_expense_breakdown(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    data = ChartService(db, user_id).expense_breakdown(period)
    return {"range": period.slug, "data": data}


@app.get("/api/charts/networth")
def chart_networth(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request, when_missing="12m")
    trend = ChartService(db, user_id).net_worth(period)
    return {
        "range": period.slug,
        "data": trend.points,
        "current_net_worth": trend.current_net_worth,
    }


@app.get("/api/charts/summary")
def chart_summary(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return ChartService(db, user_id).summary()


@app.post("/api/charts/simulate")
def chart_simulate(
    payload: SimulationIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return {"data": ChartService(db, user_id).simulate(payload)}


@app.get("/api/charts/export/{chart}")
def chart_export(
    chart: ChartType,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(
        request, when_missing="12m" if chart == "networth" else "6m"
    )
    try:
        csv_text = ChartService(db, user_id).export_csv(chart, period)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    filename = f"{chart}_{period.start}_{period.end}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/insights")
def insights(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return InsightsService(db, user_id).overview()


@app.get("/api/goals")
def list_goals(
    status: Optional[GoalStatus] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    today = local_today()
    goals = GoalService(db, user_id).list(status)
    return {"goals": [goal_payload(goal, today) for goal in goals]}


@app.post("/api/goals", status_code=201)
def create_goal(
    payload: GoalIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user_id).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return goal_payload(goal)


@app.get("/api/goals/{goal_id}")
def read_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user_id).get(goal_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return goal_payload(goal)


@app.put("/api/goals/{goal_id}")
def update_goal(
    goal_id: int,
    payload: GoalUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user_id).update(goal_id, payload)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return goal_payload(goal)


@app.delete("/api/goals/{goal_id}")
def delete_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        GoalService(db, user_id).delete(goal_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True}


@app.post("/api/goals/{goal_id}/contribute")
def contribute_goal(
    goal_id: int,
    payload: ContributionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user_id).contribute(goal_id, payload.amount)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return goal_payload(goal)


@app.get("/api/chat/session")
def chat_session(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return chat_payload(ChatService(db, user_id).session_chat())


@app.post("/api/chat/message")
def chat_message(
    payload: ChatMessageIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    advisor=Depends(get_advisor_dep),
):
    try:
        chat, answer = ChatService(db, user_id).send(payload, advisor)
    except AdvisorError as exc:
        db.rollback()
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {
        "chat_id": chat.id,
        "data_sharing": chat.data_sharing,
        "response": answer.content,
        "timestamp": answer.timestamp.isoformat(),
    }


@app.get("/api/chat/history")
def chat_history(
    limit: int = 10,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    limit = min(max(limit, 1), 50)
    chats = ChatService(db, user_id).history(limit)
    return {"chats": [chat_payload(chat) for chat in chats]}


@app.delete("/api/chat/clear")
def chat_clear(
    payload: Optional[ChatClearIn] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    ChatService(db, user_id).clear(payload.chat_id if payload else None)
    return {"success": True}


@app.get("/api/chat/suggestions")
def chat_suggestions(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return {"suggestions": ChatService(db, user_id).suggestions()}


@app.put("/api/chat/data-sharing")
def chat_data_sharing(
    payload: DataSharingIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    enabled = ChatService(db, user_id).set_data_sharing(
        payload.enabled, payload.chat_id
    )
    return {"success": True, "data_sharing": enabled}
