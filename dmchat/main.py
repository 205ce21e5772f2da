import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dmchat.api.deps import close_clients
from dmchat.api.v1.route import api_router as MainRouter
from dmchat.config.config import LOG_LEVEL
from dmchat.db import models  # noqa: F401
from dmchat.db.session import Base, engine
from dmchat.errors import ChatError

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="dmchat", version="0.1.0")
app.include_router(router=MainRouter, prefix="/api/v1")


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Missing required fields", "detail": jsonable_encoder(exc.errors())},
    )


@app.get("/health")
def health() -> dict:
    return {"status": "OK"}


@app.on_event("startup")
def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await close_clients()
