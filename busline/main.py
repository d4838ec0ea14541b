import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from busline.config import settings
from busline.database import Base, engine
from busline.exceptions import BookingSystemError, StorageUnavailable
from busline.routes.router import router as routes_router
from busline.schedules.router import router as schedules_router
from busline.bookings.router import router as bookings_router
from busline.admin.router import router as admin_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Segment-based seat booking for multi-stop bus routes",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error handlers
@app.exception_handler(BookingSystemError)
async def booking_error_handler(request: Request, exc: BookingSystemError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(OperationalError)
async def storage_error_handler(request: Request, exc: OperationalError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    error = StorageUnavailable()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())

# Include routers
app.include_router(
    routes_router,
    prefix=f"{settings.API_V1_STR}/routes",
    tags=["Route Search & Fares"]
)

app.include_router(
    schedules_router,
    prefix=f"{settings.API_V1_STR}/schedules",
    tags=["Schedules & Tracking"]
)

app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Booking & Cancellation"]
)

app.include_router(
    admin_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Admin System"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
