"""
FastAPI app factory aggregating the routers under phonebook/routes.
The shared DB handle is injected once and read back by each handler through a dependency.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .db import SharedDb
from .logs import LogContext
from .routes import base as base_routes
from .routes import records as records_routes


async def _decode_error_handler(request: Request, exc: RequestValidationError):
    log = LogContext("DECODE_BODY")
    log.set_payload({"method": request.method, "path": request.url.path})
    log.write("ERROR", str(exc.errors()))
    return JSONResponse(status_code=400, content={"detail": "couldn't decode JSON"})


def create_app(db: SharedDb) -> FastAPI:
    app = FastAPI(title="phonebook-api", version=__version__)
    app.state.db = db

    app.add_exception_handler(RequestValidationError, _decode_error_handler)

    app.include_router(base_routes.router)
    app.include_router(records_routes.router)
    return app
