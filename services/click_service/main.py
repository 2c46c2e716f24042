from fastapi import FastAPI

from shared.observability import setup_observability

from .router import router

click_app = FastAPI(title="Click Callback Service", version="1.0.0")

# Structured logs, OTLP traces and /metrics
setup_observability(click_app, "click_service")

click_app.include_router(router)
