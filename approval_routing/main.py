"""
Main FastAPI Application Entry Point
Expense Approval Routing Engine
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import time

from approval_routing.config.settings import settings
from approval_routing.config.database import init_db
from approval_routing.exceptions import ApprovalRoutingError
from approval_routing.utils.logger import setup_logger
from approval_routing.middleware.logging_middleware import LoggingMiddleware

# Import routes
from approval_routing.routes import approval, approval_config

# Setup logger
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for application startup and shutdown
    """
    # Startup
    logger.info("Starting Expense Approval Routing Engine...")

    init_db()
    logger.info("Database tables created successfully")

    logger.info("Application started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Expense Approval Routing Engine...")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-level approval routing for expense reports",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)


# Exception handlers
@app.exception_handler(ApprovalRoutingError)
async def approval_routing_exception_handler(request: Request, exc: ApprovalRoutingError):
    """Handle approval routing errors"""
    logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "code": exc.code,
            "message": exc.message
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors"""
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": "Validation error",
            "errors": jsonable_encoder(exc.errors())
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": time.time()
    }


# Include routers
app.include_router(approval.router, prefix="/api/approvals", tags=["Approvals"])
app.include_router(approval_config.router, prefix="/api/approval-config", tags=["Approval Configuration"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "approval_routing.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
