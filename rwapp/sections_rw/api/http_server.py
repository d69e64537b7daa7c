"""
HTTP server for sections-rw.

This module exposes the sections service over REST:
- PUT    /sections/{uuid}   create or replace a section
- GET    /sections/{uuid}   read a section
- DELETE /sections/{uuid}   delete a section
- GET    /sections/__count  number of sections
- GET    /__health          store connectivity
- GET    /__gtg             good-to-go probe for load balancers

Invariants:
    - Handlers call only the SectionsService operations
    - Store errors map to status codes here and nowhere else:
      InvalidRecordError -> 400, ConstraintViolationError -> 409,
      StoreUnavailableError -> 503, other GraphStoreError -> 500

How to change safely:
    - Keep /sections/__count registered before /sections/{uuid}
    - Keep the JSON wire names stable; other services write with them
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from .. import __version__
from ..graph import ConstraintViolationError, GraphStoreError, StoreUnavailableError
from ..sections import InvalidRecordError, SectionsService
from .schemas import CountResponse, HealthResponse, SectionPayload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sections"])


def get_service(request: Request) -> SectionsService:
    """Get the sections service from app state."""
    return request.app.state.sections_service


# --- Section Routes ---


@router.get("/sections/__count", response_model=CountResponse)
async def count_sections(service: SectionsService = Depends(get_service)):
    """Count stored sections."""
    return CountResponse(count=await service.count())


@router.put("/sections/{uuid}")
async def put_section(
    uuid: str,
    payload: SectionPayload,
    service: SectionsService = Depends(get_service),
):
    """Create or fully replace a section."""
    if payload.uuid != uuid:
        raise HTTPException(
            status_code=400,
            detail="Uuids from payload and request, respectively, do not match",
        )

    await service.write(payload.to_section())
    return {"message": "PUT successful"}


@router.get(
    "/sections/{uuid}",
    response_model=SectionPayload,
    response_model_exclude_none=True,
)
async def get_section(uuid: str, service: SectionsService = Depends(get_service)):
    """Read a section by uuid."""
    section = await service.read(uuid)
    if section is None:
        raise HTTPException(status_code=404, detail=f"Section {uuid} not found")
    return SectionPayload.from_section(section)


@router.delete("/sections/{uuid}", status_code=204)
async def delete_section(uuid: str, service: SectionsService = Depends(get_service)):
    """Delete a section."""
    if not await service.delete(uuid):
        raise HTTPException(status_code=404, detail=f"Section {uuid} not found")
    return Response(status_code=204)


# --- Operational Routes ---


@router.get("/__health", response_model=HealthResponse, response_model_exclude_none=True)
async def health(service: SectionsService = Depends(get_service)):
    """Check graph store connectivity."""
    try:
        await service.check()
    except StoreUnavailableError as e:
        logger.warning(f"Health check failed: {e}")
        return JSONResponse({"healthy": False, "error": str(e)}, status_code=503)
    return HealthResponse(healthy=True)


@router.get("/__gtg", response_class=PlainTextResponse)
async def good_to_go(service: SectionsService = Depends(get_service)):
    """Good-to-go probe."""
    try:
        await service.check()
    except StoreUnavailableError:
        return PlainTextResponse("Service unavailable", status_code=503)
    return PlainTextResponse("OK")


# --- Error Mapping ---


def _error_response(status: int, message: str, code: str) -> JSONResponse:
    return JSONResponse({"error": message, "error_code": code}, status_code=status)


async def _invalid_record(request: Request, exc: InvalidRecordError) -> JSONResponse:
    return _error_response(400, str(exc), "INVALID_RECORD")


async def _invalid_payload(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, f"Invalid payload: {exc.errors()}", "INVALID_PAYLOAD")


async def _constraint_violation(request: Request, exc: ConstraintViolationError) -> JSONResponse:
    return _error_response(409, str(exc), "CONSTRAINT_VIOLATION")


async def _store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(f"Graph store unavailable: {exc}")
    return _error_response(503, str(exc), "STORE_UNAVAILABLE")


async def _store_error(request: Request, exc: GraphStoreError) -> JSONResponse:
    logger.error(f"Graph store error: {exc}", exc_info=exc)
    return _error_response(500, str(exc), "INTERNAL")


def create_http_app(service: SectionsService) -> FastAPI:
    """Create the FastAPI application for sections-rw.

    Args:
        service: Sections service the handlers delegate to

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="sections-rw",
        description="Reads and writes sections to the graph store.",
        version=__version__,
    )
    app.state.sections_service = service

    app.include_router(router)

    app.add_exception_handler(InvalidRecordError, _invalid_record)
    app.add_exception_handler(RequestValidationError, _invalid_payload)
    app.add_exception_handler(ConstraintViolationError, _constraint_violation)
    app.add_exception_handler(StoreUnavailableError, _store_unavailable)
    app.add_exception_handler(GraphStoreError, _store_error)

    return app
