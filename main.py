from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from dishka.integrations.fastapi import setup_dishka

from core.container import container
from core.environment.config import Settings
from core.exception_handler import (
    validation_exception_handler,
    http_exception_handler,
    starlette_exception_handler,
    custom_exception_handler
)
from core.exceptions import BaseCustomException
from bridge.auction import AuctionStatusWatcher
from bridge.router import router as bridge_router
from explorer.router import router as explorer_router
from wallet.router import router as wallet_router
from wallet.tracker import TransactionTracker
from wallet.watchers import BlockWatcher, PriceWatcher

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the tracker and background watchers; stop them on shutdown.

    Parameters
    ----------
    app : FastAPI
        Application instance
    """
    settings = await container.get(Settings, component="environment")
    logger = await container.get(logging.Logger, component="logger")

    await container.get(TransactionTracker, component="wallet")
    watchers = [
        await container.get(BlockWatcher, component="wallet"),
        await container.get(PriceWatcher, component="wallet"),
    ]
    if settings.chain_type == "ethereum" and settings.auctions_address:
        watchers.append(await container.get(AuctionStatusWatcher, component="bridge"))

    for watcher in watchers:
        watcher.start()
    logger.info(f"Wallet core started for {settings.chain_name} ({settings.chain_type})")

    try:
        yield
    finally:
        for watcher in watchers:
            await watcher.stop()
        await container.close()


app = FastAPI(
    title="Wallet Core Service",
    version=VERSION,
    description="Transaction lifecycle and MET bridge core of a multi-chain wallet",
    lifespan=lifespan
)

setup_dishka(container, app)

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(StarletteHTTPException, starlette_exception_handler)
app.add_exception_handler(BaseCustomException, custom_exception_handler)
app.add_exception_handler(Exception, custom_exception_handler)

app.include_router(bridge_router)
app.include_router(explorer_router)
app.include_router(wallet_router)


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns
    -------
    dict
        Application information
    """
    return {
        "name": "Wallet Core Service",
        "version": VERSION,
        "endpoints": {
            "contracts": "/api/bridge/contracts/{name}",
            "convert_estimate": "/api/bridge/convert/estimate",
            "convert_gas_limit": "/api/bridge/convert/gas-limit",
            "auction_gas_limit": "/api/bridge/auction/gas-limit",
            "events": "/api/explorer/events",
            "gas_price": "/api/explorer/gas-price",
            "wallet_state": "/api/wallet/{wallet_id}/state",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health():
    """
    Health check endpoint.

    Returns
    -------
    dict
        Health status
    """
    return {"status": "healthy", "version": VERSION}
