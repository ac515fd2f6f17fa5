"""Order API routes."""

from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, status

router = APIRouter(prefix="/api/orders")

INVENTORY_URL = "http://inventory-service/v1/stock"


@router.get("/{order_id}")
def get_order(order_id: str):
    """Get a single order."""
    if not order_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing order id")
    return {"id": order_id}


@router.post("/", status_code=201)
def create_order(sku: Optional[str] = None, quantity: int = 1):
    """Reserve stock and create an order."""
    if sku is None:
        raise HTTPException(status_code=422, detail="sku is required")
    client = httpx.Client()
    client.post(INVENTORY_URL, json={"sku": sku, "quantity": quantity})
    return {"sku": sku, "quantity": quantity}


@router.delete("/{order_id}")
def cancel_order(order_id: str):
    """Cancel an order."""
    if not order_id:
        raise HTTPException(status_code=400)
    return {"cancelled": order_id}
