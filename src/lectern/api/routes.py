"""API route definitions."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request

from lectern import __version__
from lectern.api.models import (
    ChapterModel,
    EditionModel,
    EditionsResponse,
    HealthModel,
    UnavailableModel,
)
from lectern.resolver import ChapterResolver, FailureKind, get_resolver

DEFAULT_EDITION = "KJV"

router = APIRouter()


def _resolver(request: Request) -> ChapterResolver:
    resolver = getattr(request.app.state, "resolver", None)
    return resolver or get_resolver()


@router.get("/health", response_model=HealthModel)
async def health_check(request: Request):
    """Health check endpoint."""
    resolver = _resolver(request)
    return HealthModel(status="ok", version=__version__, editions=len(resolver.catalog))


@router.get("/editions", response_model=EditionsResponse)
async def list_editions(request: Request):
    """List every supported edition in catalog order."""
    resolver = _resolver(request)
    return EditionsResponse(
        editions=[EditionModel.from_edition(e) for e in resolver.catalog]
    )


@router.get("/chapters/{work_code}/{section}", response_model=ChapterModel)
async def get_chapter(
    request: Request,
    work_code: str,
    section: int,
    edition: Annotated[
        str, Query(description="Edition code (e.g., 'ESV', 'KJV')")
    ] = DEFAULT_EDITION,
):
    """
    Resolve a chapter in the requested edition.

    Returns 404 with the failure kind and a user-facing reason when the
    chapter is unavailable. Malformed upstream content is reported as
    upstream_unavailable.
    """
    resolver = _resolver(request)
    resolution = await resolver.resolve_detailed(work_code, section, edition)

    if resolution.chapter is None:
        failure = resolution.failure or FailureKind.UPSTREAM_UNAVAILABLE
        if failure == FailureKind.MALFORMED_UPSTREAM_CONTENT:
            failure = FailureKind.UPSTREAM_UNAVAILABLE
        raise HTTPException(
            status_code=404,
            detail=UnavailableModel(
                error=failure.value,
                message=resolver.unavailable_reason(edition, work_code, section),
            ).model_dump(),
        )

    return ChapterModel.from_chapter(resolution.chapter)
