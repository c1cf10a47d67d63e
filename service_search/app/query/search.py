"""
Search query assembly.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Mapping

from shared.logging import get_logger
from ..rules.models import Rule
from .composer import Composite, compose
from .conditions import compile_filters
from .order_by import compile_order_by

logger = get_logger("search.query")


@dataclass
class SearchQuery:
    """Everything a query builder needs to run a search; nothing is executed here."""
    alias: str = "t"
    select: Optional[str] = None
    where: Optional[Composite] = None
    params: Dict[str, Any] = field(default_factory=dict)
    order_by: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    group_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alias": self.alias,
            "select": self.select or self.alias,
            "where": str(self.where) if self.where is not None else None,
            "params": self.params,
            "order_by": ", ".join(self.order_by) or None,
            "limit": self.limit,
            "offset": self.offset,
            "group_by": self.group_by,
        }


def build_search_query(
    data: Mapping[str, Any],
    rules: Mapping[str, Rule],
    alias: str = "t",
    select: Optional[str] = None,
    extra_conditions: Optional[Mapping[str, Any]] = None,
    group_by: Optional[str] = None
) -> SearchQuery:
    """
    Compile validated search data into a ``SearchQuery``.

    ``extra_conditions`` is a condition tree (see ``compose``) ANDed with
    the filters; its fragments' parameters are bound too.
    """
    compiled = compile_filters(data, rules, alias)
    tree: Dict[str, Any] = dict(compiled.as_tree())
    if extra_conditions:
        tree[f"AND{len(tree)}"] = extra_conditions
    where = compose(tree)

    params = dict(compiled.params)
    if where is not None:
        params.update(where.params)

    limit = data.get("limit")
    offset = data.get("offset") if limit else None

    query = SearchQuery(
        alias=alias,
        select=select,
        where=where,
        params=params,
        order_by=compile_order_by(data.get("orderBy"), rules, alias),
        limit=limit,
        offset=offset,
        group_by=group_by,
    )
    logger.debug(
        "Search query built",
        conditions=len(where) if where is not None else 0,
        params=list(params),
        order_by=query.order_by
    )
    return query
