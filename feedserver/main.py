from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedserver.api.feeds import router as feeds_router
from feedserver.core.config import settings
from feedserver.core.logging_config import configure_logging
from feedserver.core.store import FeedStore
from feedserver.services.ingest import FeedServer

logger = logging.getLogger(__name__)

app = FastAPI(title="Feed Server", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(feeds_router)

def _log_item(item: dict, feed_ids: list[str], is_new: bool, descr: dict | None) -> None:
    if is_new:
        logger.info("item %s new in feeds %s", item.get("guid"), ",".join(feed_ids))
    else:
        logger.info("item %s changed (%s) in feeds %s", item.get("guid"), ",".join(sorted(descr or {})), ",".join(feed_ids))

@app.on_event("startup")
async def on_startup():
    configure_logging(settings.log_level)
    server = FeedServer(FeedStore.from_url(settings.redis_url))
    server.on_item(_log_item)
    app.state.feed_server = server
    server.start()
    for url in settings.seed_feed_urls:
        await server.register(url)

@app.on_event("shutdown")
async def on_shutdown():
    server: FeedServer = app.state.feed_server
    await server.close()
    await server.store.close()

@app.get("/health")
async def health():
    return {"ok": True}
