"""Token usage statistics and in-memory debug traces."""

from fastapi import APIRouter, Depends

from persona_chat.session import Session

from .deps import get_session
from .models import GroupByParam

router = APIRouter()


@router.get("/token-usage")
async def token_usage(
    group_by: GroupByParam = "character_provider", session: Session = Depends(get_session)
):
    """Aggregated usage plus overall totals, recomputed from every record."""
    return {
        "group_by": group_by,
        "stats": session.ledger.aggregate(group_by),
        "totals": session.ledger.totals(),
    }


@router.get("/token-usage/records")
async def token_usage_records(session: Session = Depends(get_session)):
    """Raw usage records, newest first."""
    return session.ledger.records()


@router.delete("/token-usage")
async def clear_token_usage(session: Session = Depends(get_session)):
    """Irreversibly wipe all usage records."""
    session.ledger.clear()
    return {"ok": True}


@router.get("/debug/traces")
async def debug_traces(session: Session = Depends(get_session)):
    """Traces captured this session while debug mode was on, newest first."""
    return session.recorder.recent()


@router.delete("/debug/traces")
async def clear_debug_traces(session: Session = Depends(get_session)):
    session.recorder.clear()
    return {"ok": True}
