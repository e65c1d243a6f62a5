"""Queue, preset and combine endpoints for the PlateCycler workflow."""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field

from archive_3mf import process_jobs
from config import get_settings
from errors import EmptyQueueError, IngestError, MarkerNotFoundError, PackagingError
from job_combiner import calculate_stats, output_filename, suggested_filename
from plate_swap import PlateSwapPreset
from preset_store import PresetStore, get_preset_store
from print_queue import IngestReport, PrintQueue, get_print_queue


router = APIRouter(tags=["platecycler"])
logger = logging.getLogger(__name__)

THREE_MF_MEDIA_TYPE = "application/vnd.ms-package.3dmanufacturing-3dmodel+xml"


class CopiesUpdate(BaseModel):
    copies: int = Field(..., ge=1)


class MoveRequest(BaseModel):
    index: int = Field(..., ge=0)


class OrderUpdate(BaseModel):
    job_ids: List[str]


class PresetUpdate(BaseModel):
    description: str = ""
    sequence: str = Field(..., min_length=1)


class SequenceUpdate(BaseModel):
    sequence: str = Field(..., min_length=1)


class CombineRequest(BaseModel):
    filename: Optional[str] = None  # Custom output name; suggested name when empty
    sequence: Optional[str] = None  # Override for the active sequence


def _queue() -> PrintQueue:
    queue = get_print_queue()
    if queue is None:
        raise HTTPException(status_code=503, detail="Print queue not initialized")
    return queue


def _presets() -> PresetStore:
    store = get_preset_store()
    if store is None:
        raise HTTPException(status_code=503, detail="Preset store not initialized")
    return store


def _queue_payload(queue: PrintQueue):
    jobs = queue.jobs()
    return {
        "jobs": [job.to_dict() for job in jobs],
        "suggested_filename": suggested_filename(jobs),
    }


@router.post("/queue/upload")
async def upload_to_queue(files: List[UploadFile] = File(...)):
    """Parse uploaded 3MF files and append them to the queue.

    Each file succeeds or fails on its own; failures are listed in "errors".
    """
    queue = _queue()
    settings = get_settings()

    accepted = []
    rejected: List[IngestError] = []
    for upload in files:
        filename = upload.filename or "upload.3mf"
        if not filename.lower().endswith(".3mf"):
            rejected.append(IngestError(filename, "only .3mf files are supported"))
            continue

        too_large = upload.size is not None and upload.size > settings.max_upload_bytes
        content = b"" if too_large else await upload.read(settings.max_upload_bytes + 1)
        if too_large or len(content) > settings.max_upload_bytes:
            rejected.append(IngestError(filename, f"file exceeds {settings.max_upload_mb} MB limit"))
            continue
        accepted.append((filename, content))

    report = await queue.ingest_many(accepted) if accepted else IngestReport()
    report.errors = rejected + report.errors

    logger.info(f"Upload: {len(report.added)} queued, {len(report.errors)} failed")
    return report.to_dict()


@router.get("/queue")
async def list_queue():
    """List queued jobs in print order."""
    return _queue_payload(_queue())


@router.get("/queue/stats")
async def queue_stats():
    """Copy-weighted totals for the current queue."""
    jobs = _queue().jobs()
    stats = calculate_stats(jobs).to_dict()
    stats["suggested_filename"] = suggested_filename(jobs)
    return stats


@router.put("/queue/order")
async def reorder_queue(payload: OrderUpdate):
    """Replace the queue order."""
    queue = _queue()
    try:
        queue.reorder(payload.job_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _queue_payload(queue)


@router.patch("/queue/{job_id}")
async def update_copies(job_id: str, payload: CopiesUpdate):
    """Set the number of copies for a queued job."""
    queue = _queue()
    try:
        job = queue.set_copies(job_id, payload.copies)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return job.to_dict()


@router.post("/queue/{job_id}/move")
async def move_job(job_id: str, payload: MoveRequest):
    """Move a queued job to a new position."""
    queue = _queue()
    try:
        queue.move(job_id, payload.index)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")
    return _queue_payload(queue)


@router.delete("/queue/{job_id}")
async def remove_job(job_id: str):
    """Remove a job from the queue and release its preview."""
    try:
        job = _queue().remove(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"message": "Job removed", "id": job.id}


@router.delete("/queue")
async def clear_queue():
    """Remove every queued job."""
    removed = _queue().clear()
    return {"message": "Queue cleared", "removed": removed}


@router.get("/queue/{job_id}/thumbnail")
async def get_job_thumbnail(job_id: str):
    """Return the plate preview embedded in the job's 3MF."""
    try:
        job = _queue().get(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")

    thumbnail = job.thumbnail
    if thumbnail is None:
        raise HTTPException(status_code=404, detail="Preview not available")
    try:
        data = thumbnail.data
    except RuntimeError:
        # Released by a concurrent removal
        raise HTTPException(status_code=404, detail="Preview not available")

    return Response(content=data, media_type=thumbnail.media_type)


@router.post("/combine")
async def combine_queue(request: Optional[CombineRequest] = None):
    """Combine the queued jobs into one 3MF and return it for download.

    The queue is left untouched whether this succeeds or fails.
    """
    request = request or CombineRequest()
    jobs = _queue().jobs()
    sequence = request.sequence if request.sequence and request.sequence.strip() else _presets().load_active_sequence()

    try:
        archive = await asyncio.to_thread(process_jobs, jobs, sequence)
    except EmptyQueueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MarkerNotFoundError as e:
        raise HTTPException(
            status_code=422,
            detail=f"{e}. Remove or re-export this job and try again.",
        )
    except PackagingError as e:
        raise HTTPException(status_code=500, detail=f"Processing failed: {e}")

    download_name = output_filename(jobs, request.filename)
    return Response(
        content=archive,
        media_type=THREE_MF_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{download_name}"'},
    )


@router.get("/presets")
async def list_presets():
    """List built-in and custom plate swap presets."""
    store = _presets()
    return {"presets": [p.to_dict() for p in store.list_presets()]}


@router.put("/presets/{name}")
async def save_preset(name: str, payload: PresetUpdate):
    """Create or replace a custom preset."""
    preset = PlateSwapPreset(name=name, description=payload.description, sequence=payload.sequence)
    try:
        _presets().save_custom_preset(preset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return preset.to_dict()


@router.delete("/presets/{name}")
async def delete_preset(name: str):
    """Delete a custom preset."""
    try:
        deleted = _presets().delete_custom_preset(name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Preset not found")
    return {"message": "Preset deleted"}


@router.post("/presets/{name}/activate")
async def activate_preset(name: str):
    """Load a preset as the active sequence."""
    try:
        preset = _presets().activate_preset(name)
    except KeyError:
        raise HTTPException(status_code=404, detail="Preset not found")
    return {"message": "Preset activated", "sequence": preset.sequence}


@router.get("/sequence")
async def get_active_sequence():
    """Get the active plate swap sequence."""
    return {"sequence": _presets().load_active_sequence()}


@router.put("/sequence")
async def set_active_sequence(payload: SequenceUpdate):
    """Replace the active plate swap sequence."""
    _presets().save_active_sequence(payload.sequence)
    return {"sequence": payload.sequence}
