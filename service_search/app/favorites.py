"""
Favorites: the rules and entity served by the Search service endpoints.
"""

from dataclasses import dataclass
from typing import Optional

from .request.extractor import URL
from .rules.accessors import FieldAccessorTable, accessors_from_dataclass
from .rules.custom_validators import CommonValidator, EntityValidator
from .rules.models import Rule, RuleType


@dataclass
class Favorite:
    """A bookmarked repository."""
    id: Optional[int] = None
    name: Optional[str] = None
    owner: Optional[str] = None
    html_url: Optional[str] = None
    active: bool = True
    visibility: str = "private"


VISIBILITIES = ("private", "public")

SEARCH_RULES = {
    "id": Rule(type=RuleType.INTEGER, label="Id"),
    "name": Rule(type=RuleType.STRING, label="Name"),
    "owner": Rule(type=RuleType.STRING, label="Owner", alias="o", column_expression="o.login"),
    "htmlUrl": Rule(type=RuleType.STRING, label="URL", column_expression="f.html_url", wildcard_allowed=(False, True)),
    "active": Rule(type=RuleType.BOOLEAN, label="Active"),
    "visibility": Rule(type=RuleType.STRING, label="Visibility", enum_values=VISIBILITIES, sortable=False),
}


def save_rules(is_insert: bool, common_validator: Optional[CommonValidator] = None):
    """Request rules for creating or updating a favorite."""
    common_validator = common_validator or CommonValidator()
    rules = {
        "name": Rule(type=RuleType.STRING, label="Name", require_filled=True),
        "htmlUrl": Rule(type=RuleType.STRING, label="URL", require_filled=True),
        "owner": Rule(type=RuleType.STRING, label="Owner"),
        "active": Rule(type=RuleType.BOOLEAN, label="Active", default=True),
        "visibility": Rule(
            type=RuleType.STRING,
            label="Visibility",
            default="private",
            enum_values=VISIBILITIES,
            custom_validator=common_validator.validate_enum
        ),
    }
    if not is_insert:
        rules["id"] = Rule(type=RuleType.INTEGER, label="Id", require_filled=True, source=URL)
    return rules


ENTITY_RULES = {
    "name": Rule(type=RuleType.STRING, length=(1, 255)),
    "html_url": Rule(type=RuleType.STRING, length=(1, 2048), regex=r"^https?://"),
    "visibility": Rule(
        type=RuleType.STRING,
        enum_values=VISIBILITIES,
        custom_validator=EntityValidator.validate_enum
    ),
}

# Request field -> entity field
REQUEST_TO_ENTITY = {"htmlUrl": "html_url"}

accessors = FieldAccessorTable()
accessors.register(
    Favorite,
    accessors_from_dataclass(Favorite, labels={"html_url": "URL", "name": "Name", "visibility": "Visibility"})
)


def favorite_from_request(data) -> Favorite:
    """Build a favorite from validated request data."""
    favorite = Favorite()
    return accessors.assign(favorite, {REQUEST_TO_ENTITY.get(name, name): value for name, value in data.items()})
