"""
FastAPI dependencies.

Usage:
    parser = QuerySpecParser(settings)
    service = ResourceMetadataService(registry, settings=settings)

    @app.get("/users")
    def list_users(
        metadata: ResourceMetadataService = Depends(metadata_dependency(service, resource="users")),
        query: QuerySpec = Depends(query_spec_dependency(parser, "users")),
    ):
        fields = metadata.resolve_fields("users")
        ...

Malformed query parameters answer 400 with {"errors": [...]}.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request

from ..core.errors import MalformedRequestError
from ..core.query_types import QuerySpec
from ..core.request_parser import QuerySpecParser
from ..runtime.provider import ResourceMetadataService


def query_spec_dependency(parser: QuerySpecParser, resource: Optional[str] = None) -> Callable[[Request], QuerySpec]:
    """Dependency parsing the request's query string into a QuerySpec."""

    def get_query_spec(request: Request) -> QuerySpec:
        try:
            return parser.parse_query_items(request.query_params.multi_items(), resource)
        except MalformedRequestError as e:
            raise HTTPException(status_code=400, detail={"errors": e.errors})

    return get_query_spec


def metadata_dependency(
    service: ResourceMetadataService,
    parser: Optional[QuerySpecParser] = None,
    resource: Optional[str] = None,
) -> Callable[..., ResourceMetadataService]:
    """Dependency returning service scoped to the current request's QuerySpec."""
    get_query_spec = query_spec_dependency(parser or QuerySpecParser(service.settings), resource)

    def get_metadata(query: QuerySpec = Depends(get_query_spec)) -> ResourceMetadataService:
        return service.with_query(query)

    return get_metadata
