"""Application services - library sync, reconciliation and playlist editing."""

from cadence.application.services.entity_reconciler import EntityReconciler
from cadence.application.services.library_sync_service import LibrarySyncService
from cadence.application.services.playlist_order import PlaylistOrderReconciler
from cadence.application.services.playlist_upload_service import PlaylistUploadService

__all__ = [
    "EntityReconciler",
    "LibrarySyncService",
    "PlaylistOrderReconciler",
    "PlaylistUploadService",
]
