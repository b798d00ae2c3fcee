import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..db import SQLDB
from ..errors import CallNotFound, StorageError
from ..schemas.pydantic_schemas import CallListResponse, CallRead
from ..services.call_workflow import CallWorkflow
from .deps import get_db, get_workflow

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=CallListResponse)
async def list_calls(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: Optional[str] = None,
    db: SQLDB = Depends(get_db),
):
    try:
        items, total = db.list_calls(page=page, limit=limit, search=search)
    except StorageError as e:
        logger.error(f"Error getting calls: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch calls")
    return {
        "data": [c.to_payload() for c in items],
        "pagination": {
            "total": total,
            "totalPages": math.ceil(total / limit),
            "page": page,
            "limit": limit,
        },
    }


@router.get("/{call_id}", response_model=CallRead)
async def get_call(call_id: str, db: SQLDB = Depends(get_db)):
    try:
        call = db.get_call(call_id)
    except CallNotFound:
        raise HTTPException(status_code=404, detail="Call not found")
    except StorageError as e:
        logger.error(f"Error getting call {call_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch call")
    return call.to_payload()


@router.delete("/{call_id}", status_code=204)
async def delete_call(call_id: str, workflow: CallWorkflow = Depends(get_workflow)):
    logger.info(f"Received delete request for call: {call_id}")
    try:
        await workflow.delete_call(call_id)
    except CallNotFound:
        raise HTTPException(status_code=404, detail="Call not found")
    except StorageError as e:
        logger.error(f"Error deleting call {call_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete call")
    return Response(status_code=204)
