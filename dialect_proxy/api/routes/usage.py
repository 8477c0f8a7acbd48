"""Usage endpoint for realtime counters and session token totals."""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("")
async def get_usage(request: Request) -> dict[str, Any]:
    """Return request counters plus the current token status snapshot."""
    return request.app.state.ledger.snapshot()
