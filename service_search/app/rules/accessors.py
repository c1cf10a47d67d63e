"""
Field accessor tables for entities.

Each entity class registers its readable/writable fields once. Validators and
request handlers go through the table instead of synthesizing accessor names
at runtime.
"""

import dataclasses
import threading
from typing import Dict, Any, Optional, Callable, Mapping

from shared.errors import ConfigurationError
from shared.logging import get_logger


@dataclasses.dataclass(frozen=True)
class FieldAccessor:
    """Getter/setter pair for one entity field."""
    getter: Callable[[Any], Any]
    setter: Optional[Callable[[Any, Any], None]] = None
    label: Optional[str] = None


class FieldAccessorTable:
    """Registry of field accessors per entity class."""

    def __init__(self):
        self.logger = get_logger("search.accessors")
        self._tables: Dict[type, Dict[str, FieldAccessor]] = {}
        self._lock = threading.Lock()

    def register(self, entity_cls: type, accessors: Mapping[str, FieldAccessor]):
        """Register (or replace) the accessors of an entity class."""
        with self._lock:
            self._tables[entity_cls] = dict(accessors)
        self.logger.info("Entity accessors registered", entity=entity_cls.__name__, fields=list(accessors))

    def accessors_for(self, entity: Any) -> Dict[str, FieldAccessor]:
        """Accessors of an entity (or entity class), inherited ones included."""
        entity_cls = entity if isinstance(entity, type) else type(entity)
        merged: Dict[str, FieldAccessor] = {}
        for cls in reversed(entity_cls.__mro__):
            merged.update(self._tables.get(cls, {}))
        if not merged:
            raise ConfigurationError(
                "Entity has no registered accessors",
                details={"entity": entity_cls.__name__}
            )
        return merged

    def _accessor(self, entity: Any, name: str) -> FieldAccessor:
        accessors = self.accessors_for(entity)
        if name not in accessors:
            entity_cls = entity if isinstance(entity, type) else type(entity)
            raise ConfigurationError(
                "Unknown entity field",
                details={"entity": entity_cls.__name__, "field": name}
            )
        return accessors[name]

    def get(self, entity: Any, name: str) -> Any:
        return self._accessor(entity, name).getter(entity)

    def set(self, entity: Any, name: str, value: Any):
        accessor = self._accessor(entity, name)
        if accessor.setter is None:
            raise ConfigurationError(
                "Entity field is read only",
                details={"entity": type(entity).__name__, "field": name}
            )
        accessor.setter(entity, value)

    def label(self, entity: Any, name: str) -> str:
        """Label of a field, defaulting to its name."""
        return self._accessor(entity, name).label or name

    def assign(self, entity: Any, data: Mapping[str, Any]) -> Any:
        """Set every field in ``data`` on the entity and return it."""
        for name, value in data.items():
            self.set(entity, name, value)
        return entity


def _getter(name: str) -> Callable[[Any], Any]:
    return lambda entity: getattr(entity, name)


def _setter(name: str) -> Callable[[Any, Any], None]:
    return lambda entity, value: setattr(entity, name, value)


def accessors_from_dataclass(cls: type, labels: Optional[Mapping[str, str]] = None) -> Dict[str, FieldAccessor]:
    """Build plain attribute accessors for every field of a dataclass."""
    if not dataclasses.is_dataclass(cls):
        raise ConfigurationError("Not a dataclass", details={"entity": getattr(cls, "__name__", repr(cls))})
    labels = labels or {}
    return {
        f.name: FieldAccessor(_getter(f.name), _setter(f.name), labels.get(f.name))
        for f in dataclasses.fields(cls)
    }
