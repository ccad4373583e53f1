from typing import Optional

from fastapi import Header, HTTPException, Request, status

from app.core.wiring import Services


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The API gateway authenticates the caller and forwards the user id."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authenticated user required")
    return x_user_id.strip()


def get_services(request: Request) -> Services:
    return request.app.state.services


def parse_month(month: str):
    """
    month must follow YYYY-MM format. Example: 2025-11
    """
    try:
        year_part, month_part = month.split("-")
        year, mon = int(year_part), int(month_part)
    except ValueError:
        raise HTTPException(status_code=400, detail="Month must follow YYYY-MM format")
    if not 1 <= mon <= 12 or len(year_part) != 4:
        raise HTTPException(status_code=400, detail="Month must follow YYYY-MM format")
    return year, mon
