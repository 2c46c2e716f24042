from fastapi import FastAPI
from shared.config.database import engine, Base

# IMPORTANT: import models so they register with Base
from services.payment_service import models as payment_models  # noqa: F401

from services.payment_service.main import payment_app
from services.click_service.main import click_app
from services.click_service.router import return_router

app = FastAPI(title="Click Payments")


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

# Click cabinet: Prepare URL -> /api/click/prepare, Complete URL -> /api/click/complete
# (or /api/click/ for both when the cabinet allows a single URL)
app.mount("/api/click", click_app)
app.mount("/api/payments", payment_app)

# Return URL given to Click at checkout; also accepts callbacks posted there
app.include_router(return_router)
