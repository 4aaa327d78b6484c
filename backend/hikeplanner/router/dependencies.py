"""
Shared request dependencies and response helpers for the routers.
"""

from typing import Any

from fastapi import Header, Request

from hikeplanner.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from hikeplanner.models.common import CamelModel
from hikeplanner.repositories import Repositories


def get_repositories(request: Request) -> Repositories:
    return request.app.state.repositories


def get_if_match(if_match: str | None = Header(default=None, alias="If-Match")) -> str | None:
    """Client-supplied etag, with the optional quotes and weak prefix removed."""
    if not if_match or if_match.strip() == "*":
        return None
    value = if_match.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"')


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(limit, MAX_PAGE_SIZE))


def dump(item: CamelModel) -> dict[str, Any]:
    return item.to_json()


def dump_all(items: list[CamelModel]) -> list[dict[str, Any]]:
    return [item.to_json() for item in items]


def pagination(limit: int, continuation_token: str | None, has_more: bool, total: int | None = None) -> dict:
    body: dict[str, Any] = {
        "limit": limit,
        "continuationToken": continuation_token,
        "hasMore": has_more,
    }
    if total is not None:
        body["total"] = total
    return body
