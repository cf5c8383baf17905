"""Remote search endpoint."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from cadence.api.dependencies import get_sync_service
from cadence.application.services.library_sync_service import LibrarySyncService
from cadence.domain.entities import SEARCHABLE_CLASSES, EntityClass
from cadence.domain.exceptions import ValidationException

router = APIRouter()


@router.get("/search")
async def search_remote(
    kind: str = Query(..., description="artist, album or song"),
    q: str = Query("", description="Search text; empty does nothing"),
    service: LibrarySyncService = Depends(get_sync_service),
) -> dict[str, Any]:
    """Search the media server and merge the hits into the local library."""
    try:
        entity_class = EntityClass(kind)
    except ValueError:
        allowed = ", ".join(sorted(c.value for c in SEARCHABLE_CLASSES))
        raise ValidationException(f"Unknown search kind {kind!r}, use one of {allowed}") from None
    result = await service.search_remote(entity_class, q)
    return {"kind": entity_class.value, "query": q, **result.to_dict()}
