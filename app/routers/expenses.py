import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.errors import StoreUnavailableError
from app.core.wiring import Services
from app.models.analytics import DateRange
from app.models.expense import ExpenseCreate, ExpenseInDB, ExpensePublic, ExpenseUpdate
from app.routers.deps import get_current_user_id, get_services, parse_month

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/", response_model=ExpensePublic, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    expense_db = ExpenseInDB(user_id=user_id, **expense.model_dump(exclude_none=True))
    success = services.store.put_expense(expense_db.model_dump())
    if not success:
        raise HTTPException(status_code=500, detail="Failed to save expense")
    services.events.record_created(user_id, expense_db.expense_id)
    return ExpensePublic(**expense_db.model_dump())


@router.get("/monthly/{month}")
def list_monthly_expenses(
    month: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """
    month must follow YYYY-MM format. Example: 2025-11
    """
    year, mon = parse_month(month)
    expenses = services.store.list_expenses(user_id, DateRange.for_month(year, mon))
    try:
        summary = services.summaries.monthly_summary(user_id, year, mon)
    except StoreUnavailableError as e:
        logger.error(f"Monthly listing error: {str(e)}")
        raise HTTPException(status_code=503, detail="Expense store unavailable")

    return {
        "expenses": expenses,
        "summary": summary,
    }


@router.put("/{expense_id}", response_model=ExpensePublic)
def update_expense(
    expense_id: str,
    expense_update: ExpenseUpdate,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    mutable_fields = expense_update.model_dump(exclude_unset=True, exclude_none=True)
    if not mutable_fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = services.store.update_expense(user_id, expense_id, mutable_fields)
    if not updated:
        raise HTTPException(status_code=404, detail="Expense not found")

    services.events.record_updated(user_id, expense_id)
    return ExpensePublic(**updated)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    deleted = services.store.delete_expense(user_id, expense_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Expense not found")
    services.events.record_deleted(user_id, expense_id)
    return None
