from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(prefix="/v1/example")


@router.get("/")
def get_simple():
    return PlainTextResponse("Hello")
