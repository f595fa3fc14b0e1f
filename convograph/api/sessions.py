"""API endpoints for live conversation sessions."""

from fastapi import APIRouter, Depends, HTTPException

from convograph.core.errors import ProviderConfigurationError
from convograph.core.logging import get_logger
from convograph.core.schemas_graph import GraphSnapshot
from convograph.core.schemas_insights import BrandRecord, InsightRecord
from convograph.core.schemas_session import ConversationMessage, TranscriptEvent
from convograph.services.session_orchestrator import SessionOrchestrator
from convograph.services.session_registry import SessionRegistry, get_registry

logger = get_logger(__name__)

router = APIRouter()


def _require(registry: SessionRegistry, session_id: str) -> SessionOrchestrator:
    orchestrator = registry.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return orchestrator


@router.post("", status_code=201)
async def create_session(registry: SessionRegistry = Depends(get_registry)) -> dict:
    """
    Open a new session.

    Returns:
        Dict with the new session_id

    Raises:
        HTTPException 503: If no provider is configured
    """
    try:
        session_id, _ = registry.create()
    except ProviderConfigurationError as e:
        logger.error(f"Cannot create session: {e}")
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"session_id": session_id}


@router.post("/{session_id}/transcript", status_code=202)
async def post_transcript(
    session_id: str,
    event: TranscriptEvent,
    registry: SessionRegistry = Depends(get_registry),
) -> dict:
    """Feed one speech-to-text event (partial or committed)."""
    orchestrator = _require(registry, session_id)
    orchestrator.handle_event(event)
    return {"accepted": True}


@router.post("/{session_id}/messages", status_code=202)
async def post_message(
    session_id: str,
    message: ConversationMessage,
    registry: SessionRegistry = Depends(get_registry),
) -> dict:
    """Append one conversation message."""
    orchestrator = _require(registry, session_id)
    orchestrator.handle_event(message)
    return {"accepted": True}


@router.get("/{session_id}/graph")
async def get_graph(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> GraphSnapshot:
    """
    Latest published graph snapshot.

    Raises:
        HTTPException 404: If the session is unknown or nothing is published yet
    """
    snapshot = _require(registry, session_id).latest_graph
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No graph published yet")
    return snapshot


@router.get("/{session_id}/insights")
async def get_insights(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> InsightRecord:
    """
    Latest published insight record.

    Raises:
        HTTPException 404: If the session is unknown or nothing is published yet
    """
    record = _require(registry, session_id).latest_insight
    if record is None:
        raise HTTPException(status_code=404, detail="No insights published yet")
    return record


@router.get("/{session_id}/brand")
async def get_brand(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> BrandRecord:
    """Latest published brand identity."""
    brand = _require(registry, session_id).latest_brand
    if brand is None:
        raise HTTPException(status_code=404, detail="No brand published yet")
    return brand


@router.post("/{session_id}/brand")
async def generate_brand(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> BrandRecord:
    """Generate a brand identity for the idea discussed so far."""
    orchestrator = _require(registry, session_id)
    try:
        return await orchestrator.generate_brand()
    except ProviderConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except Exception as e:
        logger.exception(f"Brand generation failed for session {session_id}")
        raise HTTPException(status_code=500, detail="Failed to generate brand") from e


@router.post("/{session_id}/reconnect")
async def reconnect_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> dict:
    """Reset the session and return its fresh identity."""
    new_id = registry.reconnect(session_id)
    if new_id is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": new_id}


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> dict:
    """Disconnect and drop the session."""
    if not registry.remove(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": True}
