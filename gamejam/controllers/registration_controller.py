# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller for registration endpoints (submit, list teams).
Streaming is left to the ingest pipeline and every rule to RegistrationService.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from gamejam.core.dependencies import get_ingest_pipeline, get_registration_service
from gamejam.core.errors import FileTooLarge, MalformedInput, RegistrationError
from gamejam.core.logging import get_logger
from gamejam.metrics import REGISTRATIONS_REJECTED
from gamejam.schemas import ApiResponse, RegistrationData, TeamSummary
from gamejam.services.multipart_ingest import MultipartIngestPipeline, boundary_from_content_type
from gamejam.services.registration_service import RegistrationService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/registration", tags=["Registration"])


def _error_response(exc: RegistrationError) -> JSONResponse:
    body = ApiResponse(success=False, message=exc.response_message(), errors=exc.response_errors())
    return JSONResponse(status_code=exc.status_code, content=body.to_content())


def _check_declared_length(request: Request, pipeline: MultipartIngestPipeline) -> None:
    declared = request.headers.get("content-length")
    if not declared or not declared.isdigit():
        return
    if int(declared) > pipeline.max_upload_bytes + pipeline.metadata_max_bytes:
        limit_mb = pipeline.max_upload_bytes // (1024 * 1024)
        raise FileTooLarge("File too large", [f"File size must be less than {limit_mb} MB"])


@router.post("/submit", summary="Register a team with its project archive")
async def submit_registration(
    request: Request,
    pipeline: MultipartIngestPipeline = Depends(get_ingest_pipeline),
    service: RegistrationService = Depends(get_registration_service),
):
    """Stream the multipart body to disk, then validate and persist the team."""
    try:
        _check_declared_length(request, pipeline)
        boundary = boundary_from_content_type(request.headers.get("content-type"))
    except RegistrationError as exc:
        REGISTRATIONS_REJECTED.labels(kind=exc.kind).inc()
        logger.warning("Registration rejected before reading body kind=%s errors=%s",
                       exc.kind, exc.errors)
        return _error_response(exc)

    try:
        upload = await pipeline.ingest(request.stream(), boundary)
    except ClientDisconnect:
        logger.warning("Client disconnected during upload")
        return _error_response(MalformedInput("Invalid request", ["Upload was interrupted"]))

    try:
        result = await run_in_threadpool(service.register, upload)
    except RegistrationError as exc:
        return _error_response(exc)

    body = ApiResponse(
        success=True,
        message="Registration completed successfully!",
        data=RegistrationData(**result).model_dump(by_alias=True),
    )
    return JSONResponse(status_code=200, content=body.to_content())


@router.get("/teams", summary="List registered teams")
def list_teams(service: RegistrationService = Depends(get_registration_service)):
    teams = [TeamSummary(**t).model_dump(by_alias=True) for t in service.list_teams()]
    body = ApiResponse(success=True, message="Teams retrieved successfully", data=teams)
    return JSONResponse(status_code=200, content=body.to_content())
