"""Atelier checkout API service entrypoint."""

import logging

from fastapi import FastAPI

from services.api.app.db.init_db import init_db
from services.api.app.routers.cart import router as cart_router
from services.api.app.routers.checkout import router as checkout_router
from services.api.app.routers.orders import router as orders_router
from services.api.app.routers.settings import router as settings_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Atelier Checkout API")

app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(settings_router)


@app.on_event("startup")
def _startup() -> None:
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
