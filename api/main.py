# api/main.py
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.routes import cron, entities, health, sync, ticketmaster, vote
from config.settings import settings
from services.errors import TheSetError

logger = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    async with httpx.AsyncClient() as client:
        app.state.http_client = client
        yield


app = FastAPI(title="TheSet API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(TheSetError)
async def theset_error_handler(request: Request, exc: TheSetError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {errors[0].get('msg', '')}".strip()
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(ticketmaster.router, prefix="/api", tags=["ticketmaster"])
app.include_router(vote.router, prefix="/api", tags=["vote"])
app.include_router(sync.router, prefix="/api", tags=["sync"])
app.include_router(entities.router, prefix="/api", tags=["entities"])
app.include_router(cron.router, prefix="/api/cron", tags=["cron"])


@app.get("/")
async def root():
    return {"message": "TheSet API"}
