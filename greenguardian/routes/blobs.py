"""
blobs.py — Serves uploaded incident photos from GridFS.

Routes:
  GET /api/v1/blobs/{blob_id}  — raw photo bytes with their stored content type

Report documents store these URLs in `photos`, so the portal can drop them
straight into <img src>. No auth: the URLs are unguessable ObjectIds.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from greenguardian.core.database import get_store

router = APIRouter(prefix="/api/v1/blobs", tags=["blobs"])


@router.get("/{blob_id}")
async def get_blob(blob_id: str, store=Depends(get_store)):
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    blob = await store.open_blob(blob_id)
    if blob is None:
        raise HTTPException(status_code=404, detail="Blob not found")

    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
