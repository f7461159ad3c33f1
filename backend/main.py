"""
Splitledger Backend API

A FastAPI backend for splitting bills between friends and settling them.
This module sets up the app and mounts routers - all endpoint logic is in routers/.
"""

import logging
import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import models
from database import engine
from exceptions import LedgerError, TRANSIENT

# Import routers
from routers import balances, bills, friends, payments, users


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
models.Base.metadata.create_all(bind=engine)

# Initialize FastAPI app
app = FastAPI(
    title="Splitledger API",
    description="API for bill splitting, obligations and payment settlement",
    version="1.0.0"
)

# CORS middleware
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    headers = None
    if exc.kind == TRANSIENT:
        headers = {"Retry-After": "1"}
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Include routers
app.include_router(users.router)
app.include_router(friends.router)
app.include_router(bills.router)
app.include_router(balances.router)
app.include_router(payments.router)


@app.get("/health")
def health():
    return {"status": "ok"}
