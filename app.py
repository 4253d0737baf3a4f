import logging
import os
import shutil
import tempfile
from datetime import date
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import get_settings
from verification.batch import BatchOrchestrator
from verification.file_converter import convert_to_images
from verification.name_match import compare_names
from verification.run_pipeline import run_pipeline, verify_booking
from verification.schemas import (
    BatchItem,
    BatchJob,
    BookingRecord,
    NameComparisonResult,
    VerificationResult,
)
from verification.stores import BookingStore, InMemoryBookingStore, InMemoryJobStore, JobStore
from verification.vision import OpenAIVisionService, VisionModelService

logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="License Verification Service",
    description="AI-powered driver's license verification for rental bookings",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------
# Dependencies
# ------------------------
@lru_cache
def get_vision() -> VisionModelService:
    return OpenAIVisionService(get_settings())


@lru_cache
def get_booking_store() -> BookingStore:
    return InMemoryBookingStore()


@lru_cache
def get_job_store() -> JobStore:
    return InMemoryJobStore()


def get_orchestrator(
    vision: VisionModelService = Depends(get_vision),
    job_store: JobStore = Depends(get_job_store),
    booking_store: BookingStore = Depends(get_booking_store),
) -> BatchOrchestrator:
    return BatchOrchestrator(vision, job_store, booking_store)


class NameComparisonRequest(BaseModel):
    document_name: str
    booking_name: str


class BatchCreateRequest(BaseModel):
    items: Optional[List[BatchItem]] = None
    # When items are omitted, the backlog is batched instead
    backlog_limit: Optional[int] = None


# ------------------------
# Real-time verification
# ------------------------
@app.post("/verify", response_model=VerificationResult)
async def verify_license(
    front: UploadFile = File(...),
    back: Optional[UploadFile] = File(None),
    jurisdiction: Optional[str] = Form(None),
    guest_name: Optional[str] = Form(None),
    vision: VisionModelService = Depends(get_vision),
):
    """
    Verify a driver's license from front (and optional back) photos.
    Supports JPG / PNG / HEIC / PDF uploads.
    """
    temp_dir = tempfile.mkdtemp(prefix="dl_")
    try:
        images = {}
        for side, uploaded_file in (("front", front), ("back", back)):
            if not uploaded_file or not uploaded_file.filename:
                continue

            raw_path = os.path.join(temp_dir, f"raw_{side}_{os.path.basename(uploaded_file.filename)}")
            with open(raw_path, "wb") as buffer:
                shutil.copyfileobj(uploaded_file.file, buffer)

            try:
                converted = convert_to_images(raw_path, os.path.join(temp_dir, side))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if not converted:
                raise HTTPException(status_code=400, detail=f"No images produced for {side}")
            images[side] = converted[0]
            # A two-page PDF for the front carries the back on page 2
            if side == "front" and len(converted) > 1 and not (back and back.filename):
                images["back"] = converted[1]

        return run_pipeline(
            vision,
            front_image=images["front"],
            back_image=images.get("back"),
            jurisdiction_hint=jurisdiction,
            booking_name=guest_name,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"License verification failed: {str(e)}"
        )
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


@app.post("/names/compare", response_model=NameComparisonResult)
async def compare_booking_name(request: NameComparisonRequest):
    return compare_names(request.document_name, request.booking_name)


@app.post("/bookings/{booking_id}/verify", response_model=VerificationResult)
async def verify_booking_license(
    booking_id: str,
    vision: VisionModelService = Depends(get_vision),
    booking_store: BookingStore = Depends(get_booking_store),
):
    try:
        return verify_booking(booking_id, booking_store, vision)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ------------------------
# Batch verification
# ------------------------
@app.get("/backlog", response_model=List[BookingRecord])
async def get_backlog(limit: Optional[int] = None,
                      orchestrator: BatchOrchestrator = Depends(get_orchestrator)):
    return orchestrator.find_backlog(limit)


@app.post("/batches", response_model=BatchJob)
async def create_batch(request: BatchCreateRequest,
                       orchestrator: BatchOrchestrator = Depends(get_orchestrator)):
    items = request.items or orchestrator.backlog_items(request.backlog_limit)
    if not items:
        raise HTTPException(status_code=422, detail="Nothing to verify")
    try:
        return orchestrator.create_job(items)
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"Batch submission failed: {str(e)}")


@app.get("/batches/{job_id}", response_model=BatchJob)
async def get_batch(job_id: str, job_store: JobStore = Depends(get_job_store)):
    try:
        return job_store.get(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Batch {job_id} not found")


@app.post("/batches/{job_id}/sync", response_model=BatchJob)
async def sync_batch(job_id: str, orchestrator: BatchOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.sync_status(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Batch {job_id} not found")


@app.post("/batches/{job_id}/reconcile", response_model=BatchJob)
async def reconcile_batch(job_id: str, orchestrator: BatchOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.reconcile(job_id, as_of=date.today())
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Batch {job_id} not found")


# ------------------------
# Health Check
# ------------------------
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "license-verification"
    }


# ------------------------
# Local Dev Entry
# ------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
