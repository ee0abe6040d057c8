from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockledger.config import settings
from stockledger.events.immutability import register_immutability_listeners
from stockledger.logging_config import configure_logging
from stockledger.routers import fulfillments, inventory, purchase_orders, sales_orders

configure_logging(settings.LOG_LEVEL)
register_immutability_listeners()

app = FastAPI(title="Stockledger API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(purchase_orders.router)
app.include_router(sales_orders.router)
app.include_router(fulfillments.router)
app.include_router(inventory.router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "ok"}
