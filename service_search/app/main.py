"""
Search service: validates search requests and compiles them into queries.
"""

import json
from typing import Dict, Any, Optional

from fastapi import Request
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.errors import RequestValidationError
from shared.logging import set_user_context

from .favorites import (
    SEARCH_RULES, ENTITY_RULES, accessors, save_rules, favorite_from_request
)
from .request.extractor import (
    QUERY, BODY, HEADER, URL, SearchRequestHandler, validate_request, raise_for_errors
)
from .rules.custom_validators import CommonValidator
from .rules.messages import ValidationContext, Translator
from .rules.validator import Validator


class SearchQueryResponse(BaseModel):
    """Compiled search query."""
    alias: str
    select: str
    where: Optional[str] = None
    params: Dict[str, Any] = {}
    order_by: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    group_by: Optional[str] = None


class FavoriteResponse(BaseModel):
    """Validated favorite."""
    id: Optional[int] = None
    name: Optional[str] = None
    owner: Optional[str] = None
    html_url: Optional[str] = None
    active: bool = True
    visibility: str = "private"


class SearchService(BaseService):
    """Search service implementation."""

    def __init__(self):
        super().__init__("search", 8000)
        self.favorites_search = SearchRequestHandler(
            SEARCH_RULES,
            alias="f",
            select="f, o",
            config=self.config
        )
        self.common_validator = CommonValidator(self.config.request_error_prefix)
        self._setup_search_routes()

    def _context(self, request: Request) -> ValidationContext:
        locale = request.headers.get("Accept-Language")
        user_id = request.headers.get("X-User-ID")
        set_user_context(user_id=user_id, locale=locale)
        return ValidationContext(
            translator=Translator(default_locale=self.config.locale),
            locale=locale,
            user_id=user_id
        )

    async def _bags(self, request: Request) -> Dict[str, Dict[str, Any]]:
        body: Dict[str, Any] = {}
        raw = await request.body()
        if raw:
            try:
                body = json.loads(raw)
            except ValueError:
                raise RequestValidationError("Request body is not valid JSON")
            if not isinstance(body, dict):
                raise RequestValidationError("Request body must be a JSON object")
        return {
            QUERY: dict(request.query_params),
            BODY: body,
            HEADER: dict(request.headers),
            URL: dict(request.path_params),
        }

    def _setup_search_routes(self):
        """Set up search-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "search",
                "message": "Search rules service",
                "version": "1.0.0",
                "capabilities": ["validation", "filter_compilation", "sorting"]
            }

        @self.app.get("/favorites/search", response_model=SearchQueryResponse)
        async def search_favorites(request: Request):
            """Validate the filters and return the compiled query."""
            bags = await self._bags(request)
            query = self.favorites_search.handle(
                bags, request.method,
                context=self._context(request),
                extra_conditions=["o.deleted_at IS NULL"]
            )
            return SearchQueryResponse(**query.to_dict())

        @self.app.post("/favorites", response_model=FavoriteResponse)
        async def insert_favorite(request: Request):
            """Validate a new favorite."""
            return await self._save_favorite(request, is_insert=True)

        @self.app.put("/favorites/{id}", response_model=FavoriteResponse)
        async def update_favorite(request: Request):
            """Validate changes to a favorite."""
            return await self._save_favorite(request, is_insert=False)

    async def _save_favorite(self, request: Request, is_insert: bool) -> FavoriteResponse:
        context = self._context(request)
        data = validate_request(
            await self._bags(request),
            save_rules(is_insert, self.common_validator),
            request.method,
            context=context,
            prefix=self.config.request_error_prefix
        )
        favorite = favorite_from_request(data)

        errors = Validator(context).validate_entity_fields(
            favorite, ENTITY_RULES, accessors, prefix=self.config.entity_error_prefix
        )
        raise_for_errors(errors)

        self.logger.info("Favorite validated", is_insert=is_insert, favorite_id=favorite.id)
        return FavoriteResponse(**vars(favorite))


def create_app():
    """Create the FastAPI application."""
    return SearchService().app


if __name__ == "__main__":
    service = SearchService()
    service.run()
