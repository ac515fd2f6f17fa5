"""Order API routes."""

from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, status

router = APIRouter(prefix="/api/orders")

INVENTORY_URL = "http://inventory-service/v1/stock"
AUDIT_URL = "http://audit-service/v1/log"


@router.get("/{order_id}")
def get_order(order_id: str):
    """Get a single order."""
    if not order_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return {"id": order_id}


@router.post("/", status_code=201)
def create_order(sku: Optional[str] = None, quantity: int = 1):
    """Reserve stock and create an order."""
    if sku is None:
        raise HTTPException(status_code=422, detail="sku is required")
    if quantity > 100:
        raise HTTPException(status_code=422, detail="quantity too large")
    client = httpx.Client()
    client.post(INVENTORY_URL, json={"sku": sku, "quantity": quantity})
    client.post(AUDIT_URL, json={"event": "order_created", "sku": sku})
    return {"sku": sku, "quantity": quantity}


@router.patch("/{order_id}")
def update_order(order_id: str, quantity: int):
    """Change the quantity of an order."""
    if quantity < 1:
        raise HTTPException(status_code=422)
    return {"id": order_id, "quantity": quantity}
