"""Entry point for the FastAPI-powered CineTrack backend."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import Database
from .errors import InvalidRequestError
from .services.gateway import MediaGateway, build_gateway

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url).rstrip("/"),
            timeout=httpx.Timeout(settings.tmdb_timeout_seconds, connect=5.0),
        )
    )

    database: Database | None = None
    if settings.database_url:
        try:
            database = Database(settings.database_url)
            await database.create_all()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Database unavailable, falling back to in-memory storage: %s", exc
            )
            if database is not None:
                await database.dispose()
            database = None

    gateway = build_gateway(
        settings,
        tmdb_http_client,
        database.session_factory if database is not None else None,
    )
    fastapi_app.state.gateway = gateway
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await gateway.close()
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Personal movie and TV tracker backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_gateway(app: FastAPI) -> MediaGateway:
    gateway = getattr(app.state, "gateway", None)
    if not isinstance(gateway, MediaGateway):
        raise RuntimeError("Media gateway not initialised")
    return gateway


def _dump(items: list[Any]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


async def _read_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def _media_payload(body: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
    media = body.get("media")
    if not isinstance(media, dict):
        media = {}
    media_id = body.get("mediaId")
    if media_id is None:
        media_id = media.get("id")
    return media_id, media


def register_routes(fastapi_app: FastAPI) -> None:
    def _user_id(request: Request) -> str:
        return request.query_params.get("userId") or settings.default_user_id

    @fastapi_app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(
        _: Request, exc: InvalidRequestError
    ) -> JSONResponse:
        return JSONResponse({"ok": False, "message": str(exc)}, status_code=400)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        return {
            "status": "ok",
            "live": gateway.live_enabled,
            "persistence": gateway.persistence_enabled,
        }

    @fastapi_app.get("/home")
    async def home(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        user_id = _user_id(request)
        viewed = await gateway.get_viewed(user_id)
        watchlist = await gateway.get_watchlist(user_id)
        stats = await gateway.get_profile_stats(user_id)
        top = await gateway.get_top_picks(user_id, 3)
        trending = await gateway.get_trending("all", "day")
        return {
            "ok": True,
            "profile": gateway.get_profile(user_id).model_dump(mode="json"),
            "stats": stats.model_dump(mode="json"),
            "viewed": _dump(viewed),
            "top": _dump(top),
            "watchlist": _dump(watchlist),
            "trending": _dump(trending.results),
        }

    @fastapi_app.get("/home/stats")
    async def home_stats(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        user_id = _user_id(request)
        stats = await gateway.get_profile_stats(user_id)
        return {
            "ok": True,
            "profile": gateway.get_profile(user_id).model_dump(mode="json"),
            "stats": stats.model_dump(mode="json"),
        }

    @fastapi_app.get("/home/viewed")
    async def home_viewed(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        viewed = await gateway.get_viewed(_user_id(request))
        return {"ok": True, "viewed": _dump(viewed)}

    @fastapi_app.post("/home/viewed", status_code=201)
    async def mark_viewed(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        media_id, media = _media_payload(await _read_body(request))
        record = await gateway.mark_viewed(_user_id(request), media_id, media)
        return {"ok": True, "viewed": record.model_dump(mode="json")}

    @fastapi_app.get("/home/watchlist")
    async def home_watchlist(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        watchlist = await gateway.get_watchlist(_user_id(request))
        return {"ok": True, "watchlist": _dump(watchlist)}

    @fastapi_app.get("/home/top")
    async def home_top(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        top = await gateway.get_top_picks(_user_id(request), 3)
        return {"ok": True, "top": _dump(top)}

    @fastapi_app.get("/search")
    async def search(
        request: Request,
        query: str = "",
        page: str = "1",
        type: str | None = None,
        year: str | None = None,
        genre: str | None = None,
    ) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        results = await gateway.search(
            query, page, {"type": type, "year": year, "genre": genre}
        )
        suggestions = await gateway.get_trending("all", "week")
        return {
            "ok": True,
            "query": query,
            "page": results.page,
            "totalResults": results.total_results,
            "results": _dump(results.results),
            "source": results.source,
            "featured": _dump(gateway.get_featured()),
            "suggestions": _dump(suggestions.results),
        }

    @fastapi_app.post("/search/watchlist", status_code=201)
    async def search_add_watchlist(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        media_id, media = _media_payload(await _read_body(request))
        watchlist = await gateway.add_to_watchlist(_user_id(request), media_id, media)
        return {"ok": True, "watchlist": _dump(watchlist)}

    @fastapi_app.delete("/search/watchlist")
    async def search_remove_watchlist(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        media_id, _ = _media_payload(await _read_body(request))
        watchlist = await gateway.remove_from_watchlist(_user_id(request), media_id)
        return {"ok": True, "watchlist": _dump(watchlist)}

    @fastapi_app.get("/discovery")
    async def discovery(request: Request, category: str = "all") -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        user_id = _user_id(request)
        media_type = "tv" if category == "tv" else "movie"
        recommendations = await gateway.get_personalized_recommendations(
            user_id, category if category in {"movie", "tv"} else "all"
        )
        suggestions = await gateway.get_trending(
            "tv" if category == "tv" else "all", "week"
        )
        return {
            "ok": True,
            "category": category,
            "mediaType": media_type,
            "recommendations": _dump(recommendations),
            "suggestions": _dump(suggestions.results),
            "watchlist": _dump(await gateway.get_watchlist(user_id)),
        }

    @fastapi_app.post("/discovery/watchlist", status_code=201)
    async def discovery_add_watchlist(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        media_id, media = _media_payload(await _read_body(request))
        watchlist = await gateway.add_to_watchlist(_user_id(request), media_id, media)
        return {"ok": True, "watchlist": _dump(watchlist)}

    @fastapi_app.post("/discovery/like", status_code=201)
    async def discovery_like(request: Request) -> dict[str, Any]:
        gateway = get_gateway(fastapi_app)
        media_id, media = _media_payload(await _read_body(request))
        record = await gateway.like_media(_user_id(request), media_id, media)
        return {"ok": True, "liked": record.model_dump(mode="json")}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
