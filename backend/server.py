from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from typing import Optional
import uuid
import logging

from config import Settings
from database import Database
from auth import TokenService
from services.user_service import UserService
from services.quota import QuotaService
from services.query_service import QueryService
from services.stripe_service import BillingService
from routes import auth, query, payment

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API with every service wired to one Settings object."""
    settings = settings or Settings.from_env()
    database = database or Database(settings)

    # Lifespan context manager for startup/shutdown
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting DocQuery API")
        await database.connect()
        if not settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY is not set. Checkout will fail.")
        if not settings.gemini_api_key:
            logger.error("GEMINI_API_KEY is not set. Queries will fail.")
        yield
        logger.info("Shutting down DocQuery API")
        await database.close()

    app = FastAPI(
        title="DocQuery API",
        description="Question answering over PDF documents with daily plan quotas",
        version="1.0.0",
        lifespan=lifespan,
    )

    token_service = TokenService(settings)
    user_service = UserService(database, token_service)
    quota_service = QuotaService(database)
    app.state.settings = settings
    app.state.database = database
    app.state.token_service = token_service
    app.state.user_service = user_service
    app.state.query_service = QueryService(settings, quota_service)
    app.state.billing_service = BillingService(settings, database, user_service)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(query.router)
    app.include_router(payment.router)

    @app.get("/")
    async def root():
        return {"service": "DocQuery API", "status": "running"}

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": settings.environment,
        }

    # Malformed bodies are client errors, same as missing fields
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = str(uuid.uuid4())
        errors = exc.errors()
        logger.warning(
            "Request validation failed request_id=%s path=%s errors=%s",
            request_id,
            request.url.path,
            [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
        )
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Invalid request body",
                "errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
                "request_id": request_id,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


app = create_app()

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8001")),
        reload=app.state.settings.environment == "development"
    )
