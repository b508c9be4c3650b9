"""
YouTube Data and Analytics API client.

Public lookups (search, playlists) use the server API key; anything scoped to
the caller's channel uses the caller's OAuth token from the identity service.
All calls go through the shared retry policy.  Responses are trimmed to the
fields the model actually needs so tool-response turns stay small.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from conductor.config import settings
from conductor.contracts.json_types import JSONObject
from conductor.core.retry import RetryExhaustedError, retry_with_backoff

logger = logging.getLogger(__name__)

_CHANNEL_METRICS = "views,estimatedMinutesWatched,averageViewDuration,subscribersGained,subscribersLost,likes,comments,shares"
_VIDEO_METRICS = "views,estimatedMinutesWatched,averageViewDuration,averageViewPercentage,likes,comments,shares"


class YouTubeError(Exception):
    """A YouTube API call failed. ``message`` is safe to show to the model."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TokenProvider(Protocol):
    async def get_access_token(self, caller_id: str) -> str: ...


def _video_summary(item: dict[str, Any]) -> JSONObject:
    snippet = item.get("snippet", {})
    stats = item.get("statistics", {})
    vid = item.get("id")
    if isinstance(vid, dict):
        vid = vid.get("videoId")
    vid = vid or snippet.get("resourceId", {}).get("videoId")
    summary: JSONObject = {
        "videoId": vid,
        "title": snippet.get("title"),
        "publishedAt": snippet.get("publishedAt"),
        "channelTitle": snippet.get("channelTitle"),
        "thumbnail": (snippet.get("thumbnails", {}).get("high") or {}).get("url"),
    }
    if stats:
        summary["viewCount"] = int(stats.get("viewCount", 0))
        summary["likeCount"] = int(stats.get("likeCount", 0))
        summary["commentCount"] = int(stats.get("commentCount", 0))
    return summary


def _rows_to_dict(report: dict[str, Any]) -> JSONObject:
    headers = [h.get("name") for h in report.get("columnHeaders", [])]
    rows = report.get("rows") or []
    if not rows:
        return {}
    return {str(name): value for name, value in zip(headers, rows[0])}


class YouTubeService:
    def __init__(self, tokens: TokenProvider, timeout: float = 20.0):
        self.tokens = tokens
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any],
        token: Optional[str] = None,
        json_body: Optional[JSONObject] = None,
    ) -> dict[str, Any]:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif settings.youtube_api_key:
            params = {**params, "key": settings.youtube_api_key}
        else:
            raise YouTubeError("YouTube API key is not configured")

        async def _attempt() -> dict[str, Any]:
            response = await self.client.request(method, url, params=params, headers=headers, json=json_body)
            response.raise_for_status()
            data = response.json()
            return data if isinstance(data, dict) else {}

        try:
            return await retry_with_backoff(_attempt, label=f"youtube:{url.rsplit('/', 1)[-1]}")
        except RetryExhaustedError as e:
            raise YouTubeError("YouTube is not responding right now") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"YouTube {method} {url} -> {status}: {e.response.text[:300]}")
            if status in (401, 403):
                raise YouTubeError("YouTube denied access. Reconnecting the channel may help.", status) from e
            if status == 404:
                raise YouTubeError("Not found on YouTube", status) from e
            raise YouTubeError(f"YouTube request failed ({status})", status) from e

    async def _data(self, path: str, params: dict[str, Any], token: Optional[str] = None) -> dict[str, Any]:
        return await self._request("GET", f"{settings.youtube_data_base_url}/{path}", params=params, token=token)

    # -------------------------------------------------------------------------
    # Caller-scoped (OAuth)
    # -------------------------------------------------------------------------

    async def get_channel_info(self, caller_id: str) -> JSONObject:
        token = await self.tokens.get_access_token(caller_id)
        data = await self._data("channels", {"part": "snippet,statistics,contentDetails", "mine": "true"}, token)
        items = data.get("items") or []
        if not items:
            raise YouTubeError("No YouTube channel found for this account")
        channel = items[0]
        stats = channel.get("statistics", {})
        return {
            "channelId": channel.get("id"),
            "title": channel.get("snippet", {}).get("title"),
            "description": channel.get("snippet", {}).get("description"),
            "subscriberCount": int(stats.get("subscriberCount", 0)),
            "videoCount": int(stats.get("videoCount", 0)),
            "viewCount": int(stats.get("viewCount", 0)),
            "uploadsPlaylistId": channel.get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads"),
        }

    async def list_my_videos(self, caller_id: str, max_results: int, page_token: Optional[str] = None) -> JSONObject:
        channel = await self.get_channel_info(caller_id)
        uploads = channel.get("uploadsPlaylistId")
        if not isinstance(uploads, str):
            return {"videos": [], "nextPageToken": None}
        token = await self.tokens.get_access_token(caller_id)
        params: dict[str, Any] = {"part": "snippet", "playlistId": uploads, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        data = await self._data("playlistItems", params, token)
        return {
            "videos": [_video_summary(item) for item in data.get("items", [])],
            "nextPageToken": data.get("nextPageToken"),
        }

    async def get_video_details(self, caller_id: str, video_id: str) -> JSONObject:
        token = await self.tokens.get_access_token(caller_id)
        data = await self._data("videos", {"part": "snippet,statistics,contentDetails", "id": video_id}, token)
        items = data.get("items") or []
        if not items:
            raise YouTubeError("Video not found or not accessible")
        item = items[0]
        details = _video_summary(item)
        details["description"] = item.get("snippet", {}).get("description")
        details["tags"] = item.get("snippet", {}).get("tags", [])
        details["duration"] = item.get("contentDetails", {}).get("duration")
        return details

    async def get_video_comments(self, caller_id: str, video_id: str, max_results: int) -> JSONObject:
        token = await self.tokens.get_access_token(caller_id)
        data = await self._data(
            "commentThreads",
            {"part": "snippet", "videoId": video_id, "maxResults": max_results, "order": "relevance"},
            token,
        )
        comments = []
        for item in data.get("items", []):
            top = item.get("snippet", {}).get("topLevelComment", {}).get("snippet", {})
            comments.append({
                "author": top.get("authorDisplayName"),
                "text": top.get("textOriginal"),
                "likeCount": top.get("likeCount", 0),
                "publishedAt": top.get("publishedAt"),
            })
        return {"items": comments}

    async def get_channel_analytics(self, caller_id: str, start_date: str, end_date: str) -> JSONObject:
        token = await self.tokens.get_access_token(caller_id)
        report = await self._request(
            "GET",
            f"{settings.youtube_analytics_base_url}/reports",
            params={"ids": "channel==MINE", "startDate": start_date, "endDate": end_date, "metrics": _CHANNEL_METRICS},
            token=token,
        )
        return {**_rows_to_dict(report), "startDate": start_date, "endDate": end_date}

    async def get_video_analytics(self, caller_id: str, video_id: str, start_date: str, end_date: str) -> JSONObject:
        token = await self.tokens.get_access_token(caller_id)
        base = {"ids": "channel==MINE", "startDate": start_date, "endDate": end_date, "filters": f"video=={video_id}"}
        url = f"{settings.youtube_analytics_base_url}/reports"
        aggregate = _rows_to_dict(await self._request("GET", url, params={**base, "metrics": _VIDEO_METRICS}, token=token))
        if not aggregate:
            return {
                "videoId": video_id,
                "message": "Analytics not available for this video (e.g. too new or no data in range).",
                "startDate": start_date,
                "endDate": end_date,
            }
        series = await self._request(
            "GET", url, params={**base, "metrics": "views", "dimensions": "day", "sort": "day"}, token=token,
        )
        return {
            "videoId": video_id,
            **aggregate,
            "timeSeries": [{"day": row[0], "views": row[1]} for row in series.get("rows") or []],
            "startDate": start_date,
            "endDate": end_date,
        }

    async def update_video_title(self, caller_id: str, video_id: str, title: str) -> JSONObject:
        """Replace a video's title, keeping its other snippet fields."""
        token = await self.tokens.get_access_token(caller_id)
        current = await self._data("videos", {"part": "snippet", "id": video_id}, token)
        items = current.get("items") or []
        if not items:
            raise YouTubeError("Video not found on your channel", 404)
        snippet = dict(items[0].get("snippet", {}))
        previous = snippet.get("title")
        snippet["title"] = title
        body: JSONObject = {
            "id": video_id,
            "snippet": {k: snippet[k] for k in ("title", "description", "tags", "categoryId") if k in snippet},
        }
        await self._request(
            "PUT", f"{settings.youtube_data_base_url}/videos", params={"part": "snippet"}, token=token, json_body=body,
        )
        logger.info(f"Updated title of {video_id} for {caller_id[:8]}")
        return {"videoId": video_id, "previousTitle": previous, "title": title}

    # -------------------------------------------------------------------------
    # Public (API key)
    # -------------------------------------------------------------------------

    async def search_videos(self, query: str, max_results: int, order: str = "relevance") -> JSONObject:
        data = await self._data(
            "search", {"part": "snippet", "type": "video", "q": query, "maxResults": max_results, "order": order},
        )
        return {
            "items": [_video_summary(item) for item in data.get("items", [])],
            "nextPageToken": data.get("nextPageToken"),
        }

    async def get_playlist_videos(self, playlist_id: str, max_results: int, page_token: Optional[str] = None) -> JSONObject:
        params: dict[str, Any] = {"part": "snippet", "playlistId": playlist_id, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        data = await self._data("playlistItems", params)
        return {
            "items": [_video_summary(item) for item in data.get("items", [])],
            "nextPageToken": data.get("nextPageToken"),
        }


def thumbnail_url(video_id: str) -> str:
    """Public high-quality thumbnail for a video."""
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"
