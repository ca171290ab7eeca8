"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from app.api.v1.endpoints import (
    askbob,
    calls,
    twilio_webhooks,
)

api_router = APIRouter()

# Provider callbacks (authenticated by X-Twilio-Signature)
api_router.include_router(twilio_webhooks.router)

# AskBob actions (authenticated by bearer token)
api_router.include_router(askbob.router)

# Call sessions (authenticated by bearer token)
api_router.include_router(calls.router)
