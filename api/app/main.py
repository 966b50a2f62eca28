"""Application FastAPI du diagnostic multi-marketplace."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from diag_ecom.config.loader import load_config
from diag_ecom.models import NoResultError

from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Charge taux de change et seuils une fois pour toutes les requêtes."""
    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    config = load_config(config_dir)
    application.state.config = config
    logger.info(
        "Configuration chargée depuis %s : reporting %s, %d taux",
        config_dir,
        config.reporting_currency,
        len(config.exchange_rates),
    )
    yield


async def _no_result_handler(request: Request, exc: NoResultError) -> JSONResponse:
    logger.warning("Lot sans fichier exploitable : %s", exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app() -> FastAPI:
    application = FastAPI(
        title="diag-ecom API",
        description="Diagnostic financier d'exports marketplace : agrégats par pays, modèle, frais, SKU et alertes.",
        lifespan=_lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["POST", "GET"],
        allow_headers=["*"],
    )
    application.add_exception_handler(NoResultError, _no_result_handler)
    application.include_router(router)
    return application


app = create_app()
