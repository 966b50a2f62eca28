"""Endpoints de l'API : /api/analyze, /api/download/excel, /api/defaults, /api/health."""

from __future__ import annotations

import dataclasses
import datetime
import json
import logging

from fastapi import APIRouter, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from diag_ecom.config.loader import AppConfig
from diag_ecom.exporters.excel import export_to_bytes
from diag_ecom.models import AnalysisResult, ConfigError
from diag_ecom.parsers import SUPPORTED_EXTENSIONS
from diag_ecom.pipeline import PipelineOrchestrator

from .overrides import apply_overrides
from .serializers import serialize_response

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_FILES = 20
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


async def _read_uploads(files: list[UploadFile]) -> list[tuple[str, bytes]]:
    """Lit les uploads dans l'ordre d'envoi.

    Les extensions ne sont pas filtrées ici : le pipeline écarte les
    formats non supportés fichier par fichier.
    """
    if len(files) > MAX_FILES:
        raise HTTPException(status_code=422, detail=f"Trop de fichiers : {len(files)} (maximum {MAX_FILES}).")

    batch: list[tuple[str, bytes]] = []
    for upload in files:
        file_name = upload.filename or "unknown"
        content = await upload.read()
        if len(content) > MAX_FILE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"Fichier '{file_name}' trop volumineux : {len(content)} octets (maximum {MAX_FILE_SIZE}).",
            )
        batch.append((file_name, content))
    logger.info("Lot reçu : %d fichier(s)", len(batch))
    return batch


def _resolve_config(request: Request, overrides_json: str | None) -> AppConfig:
    """Configuration de la requête : celle de l'application, éventuellement surchargée."""
    config: AppConfig = request.app.state.config
    if not overrides_json:
        return config
    try:
        overrides = json.loads(overrides_json)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"JSON overrides invalide : {e}")
    try:
        return apply_overrides(config, overrides)
    except (ValidationError, ConfigError) as e:
        raise HTTPException(status_code=422, detail=f"Overrides invalides : {e}")


def _run_batch(batch: list[tuple[str, bytes]], config: AppConfig) -> tuple[AnalysisResult, dict[str, object]]:
    # NoResultError remonte jusqu'au handler de l'application (422)
    orchestrator = PipelineOrchestrator()
    result = orchestrator.analyze(batch, config)
    return result, orchestrator.summarize(result, config)


@router.post("/api/analyze")
async def analyze(
    request: Request,
    files: list[UploadFile],
    overrides: str | None = Form(None),
) -> JSONResponse:
    """Upload d'exports → JSON (fichiers, agrégats, alertes, résumé, transactions)."""
    batch = await _read_uploads(files)
    config = _resolve_config(request, overrides)

    result, summary = _run_batch(batch, config)
    return JSONResponse(content=serialize_response(result, summary))


@router.post("/api/download/excel")
async def download_excel(
    request: Request,
    files: list[UploadFile],
    overrides: str | None = Form(None),
) -> StreamingResponse:
    """Upload d'exports → classeur du diagnostic en téléchargement."""
    batch = await _read_uploads(files)
    config = _resolve_config(request, overrides)

    result, _summary = _run_batch(batch, config)
    file_name = f"diagnostic-{datetime.date.today().isoformat()}.xlsx"
    return StreamingResponse(
        export_to_bytes(result, config),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/api/defaults")
async def defaults(request: Request) -> JSONResponse:
    """Devise de reporting, table de taux et seuils actifs, limites d'upload."""
    config: AppConfig = request.app.state.config
    return JSONResponse(
        content={
            "reporting_currency": config.reporting_currency,
            "exchange_rates": config.exchange_rates,
            "thresholds": dataclasses.asdict(config.thresholds),
            "supported_extensions": sorted(SUPPORTED_EXTENSIONS),
            "limits": {"max_files": MAX_FILES, "max_file_size": MAX_FILE_SIZE},
        }
    )


@router.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
