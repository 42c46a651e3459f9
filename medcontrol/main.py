import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from medcontrol.core.config import settings
from medcontrol.core.firebase import init_firebase, is_firebase_ready
from medcontrol.core.database import connect_db, close_db, get_storage, check_db_health
from medcontrol.routes import (
    auth,
    users,
    medications,
    schedules,
    connections,
    dependents,
    notifications,
)
from medcontrol.services.dose_cycle import DoseCycleEvaluator
from medcontrol.services.dose_monitor import DoseMonitor
from medcontrol.services.notifications import NotificationService


GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"
BOLD = "\033[1m"


logging.basicConfig(
    level=logging.INFO if settings.environment == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


#------This Function builds the dose monitor over the storage---------
def build_dose_monitor(storage) -> DoseMonitor:
    evaluator = DoseCycleEvaluator(storage, NotificationService(storage))
    return DoseMonitor(storage, evaluator)


#------This Function handles the lifespan events---------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.environment} environment")
    print(f"{BOLD}{BLUE}MedControl Backend v1.0.0{RESET}")

    try:
        init_firebase()
        print(f"{GREEN}[OK] Firebase initialized{RESET}")
    except Exception as e:
        logger.error(f"Failed to initialize Firebase: {str(e)}")
        raise

    try:
        await connect_db()
        print(f"{GREEN}[OK] Database connected{RESET}")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    app.state.dose_monitor = build_dose_monitor(get_storage())
    app.state.dose_monitor.start()
    print(f"{GREEN}[OK] Dose monitor started{RESET}")

    yield

    logger.info("Shutting down application...")
    print(f"{YELLOW}[SHUTDOWN] Stopping services...{RESET}")
    await app.state.dose_monitor.stop()
    await close_db()
    print(f"{RED}[SHUTDOWN] Application shutdown complete{RESET}")


app = FastAPI(
    title="MedControl API",
    description="Medication adherence tracker backend",
    version="1.0.0",
    lifespan=lifespan,
)


#------This Function handles validation errors---------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.method} {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "errors": exc.errors(),
        },
    )


#------This Function handles value errors---------
@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"Value error for {request.method} {request.url}: {str(exc)}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc)},
    )


#------This Function handles general exceptions---------
@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error for {request.method} {request.url}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error" if settings.environment == "production" else str(exc)},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(medications.router, prefix="/api")
app.include_router(schedules.router, prefix="/api")
app.include_router(connections.router, prefix="/api")
app.include_router(dependents.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(notifications.push_router, prefix="/api")


#------This Function returns health status---------
@app.get("/health")
async def health():
    return {"status": "alive", "service": "medcontrol-backend", "environment": settings.environment}


#------This Function returns detailed health status---------
@app.get("/health/detailed")
async def health_detailed(request: Request):
    monitor = getattr(request.app.state, "dose_monitor", None)
    return {
        "status": "alive",
        "service": "medcontrol-backend",
        "environment": settings.environment,
        "database": await check_db_health(),
        "firebase": {"status": "healthy" if is_firebase_ready() else "uninitialized"},
        "dose_monitor": {"running": bool(monitor and monitor.is_running)},
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "medcontrol.main:app",
        host=settings.server_host,
        port=settings.port,
        reload=settings.environment != "production",
    )
