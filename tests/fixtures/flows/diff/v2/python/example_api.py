from typing import Optional

import httpx
from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

router = APIRouter(prefix="/v1/example")


@router.get("/")
def handle_diff(id: Optional[str] = None):
    if id is None:
        return Response(status_code=400)

    if len(id) < 5:
        return Response(status_code=422)

    httpx.Client().post("http://audit-service/v1/log")

    return PlainTextResponse("OK")
