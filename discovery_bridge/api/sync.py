"""Sync management endpoints"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from discovery_bridge.services.runner import SyncAlreadyRunning, SyncRunner

router = APIRouter(prefix="/api/sync", tags=["sync"])


def get_runner(request: Request) -> SyncRunner:
    return request.app.state.runner


@router.post("/trigger")
def trigger_sync(dry_run: Optional[bool] = None, runner: SyncRunner = Depends(get_runner)) -> Dict[str, Any]:
    """Run one sync now and return its summary"""
    try:
        summary = runner.run(dry_run=dry_run)
    except SyncAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return summary.to_dict()


@router.get("/last")
def last_run(runner: SyncRunner = Depends(get_runner)) -> Dict[str, Any]:
    """Summary of the most recent run"""
    summary = runner.last()
    if summary is None:
        raise HTTPException(status_code=404, detail="No sync has run yet")
    return summary.to_dict()


@router.get("/runs")
def list_runs(runner: SyncRunner = Depends(get_runner)) -> List[Dict[str, Any]]:
    """Recent runs, newest first"""
    return [summary.to_dict() for summary in runner.runs()]
