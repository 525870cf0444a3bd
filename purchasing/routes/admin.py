from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from purchasing.context import AppContext, get_context
from purchasing.engine import reset_orders

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reset")
async def reset(ctx: AppContext = Depends(get_context)) -> JSONResponse:
    """
    Drop and recreate the orders and order_status tables.
    Every order and its history is lost (the next backup captures the empty state).
    """
    await reset_orders(ctx)
    return JSONResponse(status_code=200, content={"status": "ok"})
