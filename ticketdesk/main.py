"""
Ticket Desk - FastAPI Backend
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketdesk import __version__
from ticketdesk.config import get_settings
from ticketdesk.dependencies import build_services
from ticketdesk.middleware.logging_middleware import LoggingMiddleware
from ticketdesk.routes import ai, health, jobs, tickets

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own container before startup
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    yield


app = FastAPI(
    title="Ticket Desk",
    description="Ticket intake with AI enrichment and SLA escalation",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)

app.include_router(tickets.router)
app.include_router(ai.router)
app.include_router(jobs.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"message": "Ticket Desk API", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.fastapi_host, port=settings.fastapi_port)
