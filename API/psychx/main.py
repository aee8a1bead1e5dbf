from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from psychx.api.admin import router as admin_router
from psychx.api.assessments import router as assessments_router
from psychx.api.auth import router as auth_router
from psychx.api.booking import router as booking_router
from psychx.api.consultants import router as consultants_router
from psychx.api.health import router as health_router
from psychx.api.progress import router as progress_router
from psychx.api.roadmaps import router as roadmaps_router
from psychx.api.users import router as users_router
from psychx.core.auth import api_key_auth_middleware
from psychx.core.bootstrap import initialize_database
from psychx.core.errors import (
    PsychXError,
    domain_exception_handler,
    http_exception_handler,
    request_id_middleware,
    unhandled_exception_handler,
    validation_exception_handler,
)
from psychx.core.logging import configure_logging
from psychx.core.settings import settings
from psychx.memory.database import SessionLocal, engine

configure_logging(settings.log_level)

app = FastAPI(title="PsychX Coaching API", version="0.1.0")
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(booking_router)
app.include_router(consultants_router)
app.include_router(admin_router)
app.include_router(roadmaps_router)
app.include_router(assessments_router)
app.include_router(progress_router)
app.middleware("http")(api_key_auth_middleware)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(PsychXError, domain_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.on_event("startup")
async def on_startup():
    async with SessionLocal() as session:
        await initialize_database(session, engine)


@app.on_event("shutdown")
async def on_shutdown():
    await engine.dispose()
