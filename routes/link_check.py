"""
Link check API routes.

Upload a spreadsheet, poll progress, cancel, and download the annotated
workbook.
"""

from fastapi import APIRouter, BackgroundTasks, File, UploadFile
from fastapi.responses import JSONResponse, Response
import structlog

from exceptions import AppError
from models.check_run import CancelRunResponse, CheckRunResponse
from services.check_run_service import get_check_run_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/link-check", tags=["Link Check"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.post("/runs", response_model=CheckRunResponse, status_code=202)
async def create_run(background_tasks: BackgroundTasks, file: UploadFile = File(...)):
    """
    Upload a spreadsheet and start checking its links.

    The file is parsed before responding, so an unreadable upload fails
    here with 422. Link checks run in the background; poll the run.

    Raises:
        422: File is not a readable .xlsx/.xlsm workbook
    """
    logger.info(
        "link_check_upload_started",
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        content = await file.read()
        service = get_check_run_service()
        run = service.create_run(content, file.filename)
        background_tasks.add_task(service.execute, run.run_id)
        return service.to_response(run)
    except Exception as e:
        return handle_error(e)


@router.get("/runs/{run_id}", response_model=CheckRunResponse)
async def get_run(run_id: str):
    """
    Get run status, progress and summary.

    Raises:
        404: Run unknown or expired
    """
    try:
        service = get_check_run_service()
        return service.to_response(service.get_run(run_id))
    except Exception as e:
        return handle_error(e)


@router.post("/runs/{run_id}/cancel", response_model=CancelRunResponse)
async def cancel_run(run_id: str):
    """
    Cancel a run. Takes effect before the next row or network call.

    Raises:
        404: Run unknown or expired
    """
    try:
        run = get_check_run_service().cancel_run(run_id)
        return CancelRunResponse(
            run_id=run.run_id,
            status=run.status,
            cancel_requested=run.context.cancel_token.cancelled,
        )
    except Exception as e:
        return handle_error(e)


@router.get("/runs/{run_id}/download")
async def download_result(run_id: str):
    """
    Download the annotated workbook.

    Raises:
        404: Run unknown or expired
        409: Run has not completed
    """
    try:
        content, filename = get_check_run_service().get_result(run_id)
    except Exception as e:
        return handle_error(e)

    logger.info("link_check_download", run_id=run_id, size=len(content))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
