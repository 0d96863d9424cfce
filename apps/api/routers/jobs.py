"""Score job diagnostics."""

from fastapi import APIRouter, Depends

from routers.deps import error_response, get_services
from services.container import ServiceContainer

router = APIRouter()


@router.get("")
async def list_jobs(services: ServiceContainer = Depends(get_services)):
    scheduler = services.scheduler
    return {
        "success": True,
        "data": {
            "pending": scheduler.pending_count(),
            "idle": scheduler.is_idle,
            "jobs": scheduler.list_jobs(),
        },
    }


@router.get("/{job_id}")
async def get_job(job_id: str, services: ServiceContainer = Depends(get_services)):
    job = services.scheduler.get_job(job_id)
    if job is None:
        return error_response(404, "Job not found")
    return {"success": True, "data": job.to_dict()}
