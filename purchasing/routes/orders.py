from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from purchasing.context import AppContext, get_context
from purchasing.engine import advance_order, amend_order, cancel_order, create_order, list_orders
from purchasing.order_state import INITIAL_STATUS, OrderFields, OrderListing, Status

router = APIRouter(tags=["orders"])


class PendingOrder(OrderFields):
    """New purchase request."""


class ChangeOrder(OrderFields):
    id: int = Field(..., description="Order to amend (must still be New)")


class DeleteOrder(BaseModel):
    id: int
    force: bool = Field(default=False, description="Delete regardless of status, with its history")


class UpdateOrder(BaseModel):
    id: int
    status: Status = Field(..., description="Target lifecycle status")
    ref_number: int | None = Field(default=None, description="External reference number")


def _ok() -> JSONResponse:
    return JSONResponse(status_code=200, content={"status": "ok"})


@router.post("/new/order")
async def new_order(body: PendingOrder, ctx: AppContext = Depends(get_context)) -> JSONResponse:
    order = await create_order(ctx, OrderFields(**body.model_dump()))
    content = order.model_dump(mode="json")
    content["status"] = INITIAL_STATUS.value
    return JSONResponse(status_code=200, content=content)


@router.post("/change/order")
async def change_order(body: ChangeOrder, ctx: AppContext = Depends(get_context)) -> JSONResponse:
    await amend_order(ctx, body.id, OrderFields(**body.model_dump(exclude={"id"})))
    return _ok()


@router.delete("/del/order")
async def del_order(body: DeleteOrder, ctx: AppContext = Depends(get_context)) -> JSONResponse:
    await cancel_order(ctx, body.id, force=body.force)
    return _ok()


@router.post("/update/order")
async def update_order(body: UpdateOrder, ctx: AppContext = Depends(get_context)) -> JSONResponse:
    await advance_order(ctx, body.id, body.status, body.ref_number)
    return _ok()


@router.get("/list/order", response_model=OrderListing)
async def get_orders(ctx: AppContext = Depends(get_context)) -> OrderListing:
    """All orders and the full status history of each."""
    return await list_orders(ctx)
