# carfinder/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .api.routes import router as api_router
from .db import init_db
from .scheduler import start_scheduler, stop_scheduler

# create FastAPI instance
app = FastAPI(title="carfinder")

# the browser extension calls the API from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Access-Token"],
)

app.include_router(api_router)


@app.on_event("startup")
def on_startup():
    init_db()
    if config.SCHEDULER_ENABLED:
        start_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    stop_scheduler()
