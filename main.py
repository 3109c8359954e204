from logging_config import setup_logging

# Initialize logging BEFORE anything else
setup_logging()

from logging_config import get_logger
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from middleware.request_lifecycle import RequestLifecycleMiddleware
from routes import auth, users, projects, invitations, expenses, notifications, push
from exceptions import StorageError, ValidationError, WorkflowError
from services.engine import build_engine
from config import config

logger = get_logger("app")

app = FastAPI(title="Costify API")

# Workflow engine; routes resolve it through routes.deps.get_engine
app.state.engine = build_engine()

# CORS remains here as it's a global setting
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL] if config.ENV == "production" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request lifecycle middleware (request ID, context vars, duration logging)
app.add_middleware(RequestLifecycleMiddleware)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    """Map domain errors to HTTP: 422 validation, 403, 404, 409, 503 storage."""
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.field_errors:
        content["field_errors"] = exc.field_errors

    if isinstance(exc, StorageError):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc.message}", exc_info=exc.__cause__)
    else:
        logger.info(
            f"{type(exc).__name__}: {exc.message}",
            extra={"data": {"status": exc.status_code, "path": request.url.path}}
        )
    return JSONResponse(status_code=exc.status_code, content=content)


# REGISTER ROUTERS
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(projects.router)
app.include_router(invitations.router)
app.include_router(expenses.router)
app.include_router(notifications.router)
app.include_router(push.router)

logger.info("All routers registered, Costify API ready")

@app.get("/")
async def root():
    return {"status": "online", "message": "Costify API is running"}
