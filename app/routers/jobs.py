"""Batch job status, cancellation and result export."""
from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from app.exceptions import status_for
from app.schemas import JobResponse
from app.services.job_service import job_service

router = APIRouter()


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str):
    """Progress and results so far, newest result first."""
    try:
        return job_service.get(job_id).to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(job_id: str):
    """Stop a job after the row it is working on. Finished rows are kept."""
    try:
        return job_service.cancel(job_id).to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.get("/{job_id}/export")
async def export_job(job_id: str):
    """Download every result, failures included, as CSV."""
    try:
        content = job_service.export(job_id)
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="job-{job_id}.csv"'}
    )
