"""Sync management endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from prioritysync.models import SyncLog
from prioritysync.models.sync_log import SyncDirection, SyncStatus
from prioritysync.runner import run_once
from prioritysync.services.stores import CheckpointStore, IssueStateCache

router = APIRouter(prefix="/api/sync", tags=["sync"])


def get_db(request: Request):
    """Get database session"""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


class SyncLogResponse(BaseModel):
    id: int
    issue_url: Optional[str] = None
    task_id: Optional[str] = None
    status: SyncStatus
    direction: Optional[SyncDirection] = None
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CheckpointResponse(BaseModel):
    key: str
    cursor: Optional[str] = None
    watermark: Optional[str] = None
    last_seen_at: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IssueStateResponse(BaseModel):
    url: str
    linked_task_id: Optional[str] = None
    last_known_priority: Optional[str] = None
    issue_state: Optional[str] = None
    issue_updated_at: Optional[str] = None
    last_scanned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.post("/trigger")
def trigger_sync(request: Request):
    """Run one sync now"""
    try:
        return run_once(request.app.state.settings, request.app.state.session_factory)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/logs", response_model=List[SyncLogResponse])
def list_sync_logs(limit: int = 100, status: Optional[str] = None, db: Session = Depends(get_db)):
    """List sync logs"""
    query = db.query(SyncLog).order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
    if status:
        try:
            query = query.filter(SyncLog.status == SyncStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    return query.limit(limit).all()


@router.get("/checkpoints", response_model=List[CheckpointResponse])
def list_checkpoints(db: Session = Depends(get_db)):
    """List scanner checkpoints"""
    return CheckpointStore(db).all()


@router.get("/issues", response_model=List[IssueStateResponse])
def list_issue_states(linked: Optional[bool] = None, limit: int = 100, db: Session = Depends(get_db)):
    """List cached issue states"""
    return IssueStateCache(db).list_states(linked=linked, limit=limit)
