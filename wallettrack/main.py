import os
from datetime import datetime
from decimal import Decimal

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from wallettrack.category_projection import CategoryProjection
from wallettrack.csv_export import export_transactions_csv, parse_transactions_csv
from wallettrack.currency_conversion import CANONICAL_CURRENCY, convert_amount, normalize_currency
from wallettrack.daily_projection import DailyBalanceProjection
from wallettrack.engine import FinanceEngine
from wallettrack.errors import ConfigError, NotFoundError, UnknownViewError, ValidationError
from wallettrack.formatting import format_amount, format_signed
from wallettrack.ledger import Transaction
from wallettrack.logging_setup import configure_logging, get_logger
from wallettrack.monthly_projection import MonthlyProjection
from wallettrack.projection_cache import Projection, ProjectionName
from wallettrack.scheduler import DEFAULT_DEBOUNCE_SECONDS

configure_logging()
logger = get_logger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_system_default_currency() -> str:
    raw = os.getenv("DEFAULT_CURRENCY", CANONICAL_CURRENCY)
    try:
        return normalize_currency(raw)
    except ConfigError:
        return CANONICAL_CURRENCY


def get_debounce_seconds() -> float:
    raw = os.getenv("RECOMPUTE_DEBOUNCE_MS")
    if not raw:
        return DEFAULT_DEBOUNCE_SECONDS
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_DEBOUNCE_SECONDS
    return max(value, 0) / 1000


def create_finance_engine() -> FinanceEngine:
    try:
        return FinanceEngine(
            display_currency=get_system_default_currency(),
            debounce_seconds=get_debounce_seconds(),
        )
    except ConfigError:
        logger.warning("default_currency_unsupported", currency=os.getenv("DEFAULT_CURRENCY"))
        return FinanceEngine(debounce_seconds=get_debounce_seconds())


# Engine calls run in async endpoints so that they share the event loop with
# the debounce timer.
@app.on_event("startup")
async def init_engine() -> None:
    app.state.finance_engine = create_finance_engine()


@app.on_event("shutdown")
async def close_engine() -> None:
    finance_engine = getattr(app.state, "finance_engine", None)
    if finance_engine is not None:
        finance_engine.close()


def get_engine(request: Request) -> FinanceEngine:
    finance_engine = getattr(request.app.state, "finance_engine", None)
    if finance_engine is None:
        finance_engine = create_finance_engine()
        request.app.state.finance_engine = finance_engine
    return finance_engine


class TransactionPayload(BaseModel):
    amount: Decimal
    category: str
    occurred_at: str
    kind: str


class TransactionResponse(BaseModel):
    id: str
    amount: Decimal
    currency: str
    category: str
    occurred_at: datetime
    kind: str
    display_amount: Decimal
    display_currency: str


class CurrencyPayload(BaseModel):
    currency: str


class CurrencyResponse(BaseModel):
    currency: str
    supported_currencies: list[str]


class ViewPayload(BaseModel):
    view: str


class ViewResponse(BaseModel):
    view: str
    state: str


class CategoryProjectionResponse(BaseModel):
    view: str = ProjectionName.CATEGORY.value
    currency: str
    labels: list[str]
    values: list[Decimal]
    total: Decimal
    shares: list[Decimal]
    top_category: str | None = None
    is_empty: bool
    skipped: list[str] = []


class MonthBucketResponse(BaseModel):
    label: str
    revenue: Decimal
    expense: Decimal
    savings: Decimal
    status: str


class MonthlyProjectionResponse(BaseModel):
    view: str = ProjectionName.MONTHLY.value
    currency: str
    buckets: list[MonthBucketResponse]
    is_empty: bool
    skipped: list[str] = []


class DailyProjectionResponse(BaseModel):
    view: str = ProjectionName.DAILY.value
    currency: str
    day_labels: list[str]
    balances: list[Decimal]
    trend_sign: str
    final_balance: Decimal
    is_empty: bool
    skipped: list[str] = []


class SummaryResponse(BaseModel):
    currency: str
    total_revenue: Decimal
    total_expense: Decimal
    balance: Decimal
    status: str
    transaction_count: int
    total_revenue_display: str
    total_expense_display: str
    balance_display: str
    top_category: str | None = None


class TransactionImportResponse(BaseModel):
    imported_count: int
    transaction_ids: list[str]
    rejected_lines: list[int]


def to_transaction_response(txn: Transaction, display_currency: str) -> TransactionResponse:
    return TransactionResponse(
        id=txn.id,
        amount=txn.amount,
        currency=CANONICAL_CURRENCY,
        category=txn.category,
        occurred_at=txn.occurred_at,
        kind=txn.kind.value,
        display_amount=convert_amount(txn.amount, display_currency),
        display_currency=display_currency,
    )


def to_projection_response(
    projection: Projection,
) -> CategoryProjectionResponse | MonthlyProjectionResponse | DailyProjectionResponse:
    if isinstance(projection, CategoryProjection):
        return CategoryProjectionResponse(
            currency=projection.currency,
            labels=list(projection.labels),
            values=list(projection.values),
            total=projection.total,
            shares=projection.shares(),
            top_category=projection.top_category,
            is_empty=projection.is_empty,
            skipped=list(projection.skipped),
        )
    if isinstance(projection, MonthlyProjection):
        return MonthlyProjectionResponse(
            currency=projection.currency,
            buckets=[
                MonthBucketResponse(
                    label=bucket.label,
                    revenue=bucket.revenue,
                    expense=bucket.expense,
                    savings=bucket.savings,
                    status=bucket.status,
                )
                for bucket in projection.buckets
            ],
            is_empty=projection.is_empty,
            skipped=list(projection.skipped),
        )
    if isinstance(projection, DailyBalanceProjection):
        return DailyProjectionResponse(
            currency=projection.currency,
            day_labels=list(projection.day_labels),
            balances=list(projection.balances),
            trend_sign=projection.trend_sign.value,
            final_balance=projection.final_balance,
            is_empty=projection.is_empty,
            skipped=list(projection.skipped),
        )
    raise TypeError(f"Unsupported projection: {type(projection).__name__}")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    finance_engine: FinanceEngine = Depends(get_engine),
) -> list[TransactionResponse]:
    currency = finance_engine.display_currency
    return [
        to_transaction_response(txn, currency) for txn in finance_engine.get_ledger_snapshot()
    ]


@app.post("/transactions", response_model=TransactionResponse)
async def create_transaction(
    payload: TransactionPayload,
    finance_engine: FinanceEngine = Depends(get_engine),
) -> TransactionResponse:
    try:
        transaction_id = finance_engine.add_transaction(
            payload.amount,
            payload.category,
            payload.occurred_at,
            payload.kind,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    snapshot = {txn.id: txn for txn in finance_engine.get_ledger_snapshot()}
    return to_transaction_response(snapshot[transaction_id], finance_engine.display_currency)


@app.delete("/transactions/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    finance_engine: FinanceEngine = Depends(get_engine),
) -> dict:
    try:
        finance_engine.remove_transaction(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Transaction not found.") from exc
    return {"status": "deleted"}


@app.get("/transactions/export")
async def export_transactions(
    include_display: bool = Query(False),
    finance_engine: FinanceEngine = Depends(get_engine),
) -> Response:
    contents = export_transactions_csv(
        finance_engine.get_ledger_snapshot(),
        display_currency=finance_engine.display_currency if include_display else None,
    )
    return Response(
        content=contents,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="wallet-track.csv"'},
    )


@app.post("/transactions/import", response_model=TransactionImportResponse)
async def import_transactions(
    file: UploadFile = File(...),
    finance_engine: FinanceEngine = Depends(get_engine),
) -> TransactionImportResponse:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="CSV file required.")

    contents = await file.read()
    try:
        decoded = contents.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded.") from exc

    try:
        parse_result = parse_transactions_csv(decoded)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if not parse_result.rows:
        raise HTTPException(status_code=400, detail="No transactions to import.")

    try:
        transaction_ids = finance_engine.import_transactions(
            row.to_transaction() for row in parse_result.rows
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return TransactionImportResponse(
        imported_count=len(transaction_ids),
        transaction_ids=transaction_ids,
        rejected_lines=parse_result.rejected_lines,
    )


@app.get("/settings/currency", response_model=CurrencyResponse)
async def get_currency(finance_engine: FinanceEngine = Depends(get_engine)) -> CurrencyResponse:
    return CurrencyResponse(
        currency=finance_engine.display_currency,
        supported_currencies=finance_engine.supported_currencies,
    )


@app.put("/settings/currency", response_model=CurrencyResponse)
async def update_currency(
    payload: CurrencyPayload,
    finance_engine: FinanceEngine = Depends(get_engine),
) -> CurrencyResponse:
    try:
        finance_engine.set_display_currency(payload.currency)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CurrencyResponse(
        currency=finance_engine.display_currency,
        supported_currencies=finance_engine.supported_currencies,
    )


@app.get("/view", response_model=ViewResponse)
async def get_view(finance_engine: FinanceEngine = Depends(get_engine)) -> ViewResponse:
    return ViewResponse(view=finance_engine.active_view.value, state=finance_engine.state.value)


@app.put("/view", response_model=ViewResponse)
async def select_view(
    payload: ViewPayload,
    finance_engine: FinanceEngine = Depends(get_engine),
) -> ViewResponse:
    try:
        finance_engine.select_view(payload.view)
    except UnknownViewError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ViewResponse(view=finance_engine.active_view.value, state=finance_engine.state.value)


@app.get(
    "/projections/active",
    response_model=CategoryProjectionResponse | MonthlyProjectionResponse | DailyProjectionResponse,
)
async def get_active_projection(
    finance_engine: FinanceEngine = Depends(get_engine),
):
    return to_projection_response(finance_engine.get_projection())


@app.get(
    "/projections/{name}",
    response_model=CategoryProjectionResponse | MonthlyProjectionResponse | DailyProjectionResponse,
)
async def get_projection(
    name: str,
    finance_engine: FinanceEngine = Depends(get_engine),
):
    try:
        projection = finance_engine.get_projection(name)
    except UnknownViewError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_projection_response(projection)


@app.get("/summary", response_model=SummaryResponse)
async def get_summary(finance_engine: FinanceEngine = Depends(get_engine)) -> SummaryResponse:
    summary = finance_engine.get_summary()
    breakdown = finance_engine.get_projection(ProjectionName.CATEGORY)
    return SummaryResponse(
        currency=summary.currency,
        total_revenue=summary.total_revenue,
        total_expense=summary.total_expense,
        balance=summary.balance,
        status=summary.status,
        transaction_count=summary.transaction_count,
        total_revenue_display=format_amount(summary.total_revenue, summary.currency),
        total_expense_display=format_amount(summary.total_expense, summary.currency),
        balance_display=format_signed(summary.balance, summary.currency),
        top_category=breakdown.top_category,
    )
