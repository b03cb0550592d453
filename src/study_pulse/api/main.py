"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from study_pulse.api.routes import admin, health, participants, reminders, submissions
from study_pulse.logging import configure_logging
from study_pulse.utils.http_client import close_http_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield
    close_http_client()


app = FastAPI(
    title="study-pulse",
    description="Longitudinal assessment scheduling, scoring, safety alerts and reminders",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
app.include_router(participants.router, prefix="/participants", tags=["participants"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(reminders.router, prefix="/reminders", tags=["reminders"])
