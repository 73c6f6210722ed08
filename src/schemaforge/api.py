"""FastAPI application entry point."""

import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from schemaforge import __version__
from schemaforge.dependencies import get_db
from schemaforge.errors import SchemaForgeError
from schemaforge.ratelimit import limiter
from schemaforge.routers import changes, dependencies, migrations, schemas
from schemaforge.settings import settings

app = FastAPI(
    title=settings.app_name,
    description="Versioned schema registry and migration engine",
    version=__version__,
)
logger = logging.getLogger(__name__)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SchemaForgeError)
async def schemaforge_error_handler(request: Request, exc: SchemaForgeError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc") or () if part != "body")
        errors.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "ValidationError",
            "message": "Request validation failed",
            "errors": errors,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": "HTTPError", "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "InternalError", "message": str(exc)},
    )


# Routers with static /schemas/<segment> paths go first so the
# /schemas/{schema_id} routes never capture them.
app.include_router(migrations.router, prefix=settings.api_prefix)
app.include_router(changes.router, prefix=settings.api_prefix)
app.include_router(dependencies.router, prefix=settings.api_prefix)
app.include_router(schemas.router, prefix=settings.api_prefix)


# Health check endpoint
@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint with DB connectivity verification."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}")


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "schemaforge.api:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.debug
    )


if __name__ == "__main__":
    main()
