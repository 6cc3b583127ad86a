"""
Shared Ledger API

A FastAPI backend for shared expenses, net balances, debt settlement and
per-category spend tracking. This module sets up the app and mounts
routers - all endpoint logic is in routers/.
"""

import logging
import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import init_db
from utils.errors import LedgerError

# Import routers
from routers import auth, groups, expenses, balances, budgets


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

# Create database tables
init_db()

# Initialize FastAPI app
app = FastAPI(
    title="Shared Ledger API",
    description="API for shared expenses, balances, settlements and spend tracking",
    version="1.0.0"
)

# CORS middleware
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    content = {"detail": exc.detail, "error": exc.error}
    drifts = getattr(exc, "drifts", None)
    if drifts is not None:
        content["drifts"] = [d.model_dump(mode="json") for d in drifts]
    return JSONResponse(status_code=exc.status_code, content=content)


# Include routers
app.include_router(auth.router)
app.include_router(groups.router)
app.include_router(expenses.router)
app.include_router(balances.router)
app.include_router(budgets.router)
