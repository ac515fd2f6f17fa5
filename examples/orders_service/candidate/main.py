"""
Orders service, candidate version.

Sample input for ``endpoint-flow-diff diff``.
"""

from fastapi import FastAPI

from routers import orders

app = FastAPI(title="Orders Service", version="1.1.0")
app.include_router(orders.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
