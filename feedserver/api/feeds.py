from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, HttpUrl
from redis.exceptions import RedisError

from feedserver.core.security import require_admin
from feedserver.services.ingest import FeedServer

router = APIRouter(prefix="/v1", tags=["feeds"])

class FeedCreate(BaseModel):
    url: HttpUrl

def get_feed_server(request: Request) -> FeedServer:
    return request.app.state.feed_server

@router.post("/feeds", dependencies=[Depends(require_admin)])
async def register_feed(payload: FeedCreate, server: FeedServer = Depends(get_feed_server)):
    try:
        feed_id = await server.register(str(payload.url))
    except RedisError:
        raise HTTPException(status_code=503, detail="Store unavailable")
    return {"id": feed_id, "url": str(payload.url)}

@router.get("/feeds/{feed_id}")
async def get_feed(feed_id: str, server: FeedServer = Depends(get_feed_server)):
    try:
        info = await server.feed_info(feed_id)
    except RedisError:
        raise HTTPException(status_code=503, detail="Store unavailable")
    if info is None:
        raise HTTPException(status_code=404, detail="Feed not found")
    return info

@router.get("/feeds/{feed_id}/items")
async def list_feed_items(
    feed_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    server: FeedServer = Depends(get_feed_server),
):
    try:
        items = await server.feed_items(feed_id, offset, offset + limit - 1)
    except RedisError:
        raise HTTPException(status_code=503, detail="Store unavailable")
    return {"items": items}

@router.post("/refresh", dependencies=[Depends(require_admin)])
async def set_refresh(
    seconds: Optional[int] = Query(default=None, ge=1, le=86400),
    server: FeedServer = Depends(get_feed_server),
):
    return {"interval": server.refresh(seconds)}
