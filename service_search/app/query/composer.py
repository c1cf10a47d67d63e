"""
Condition composer: nested AND/OR groups of condition fragments.
"""

from typing import Dict, Any, Optional, List, Mapping, Union

from ..rules.models import ConditionFragment

GROUP_KINDS = ("AND", "OR")

Part = Union[str, ConditionFragment, "Composite"]


class Composite:
    """Boolean group of conditions rendered as SQL text."""

    def __init__(self, kind: str = "AND", parts: Optional[List[Part]] = None):
        if kind not in GROUP_KINDS:
            raise ValueError(f"Unsupported composite kind: {kind}")
        self.kind = kind
        self.parts: List[Part] = []
        for part in parts or []:
            self.add(part)

    def add(self, part: Optional[Part]) -> "Composite":
        """Add a condition, skipping empty ones."""
        if part is None or part == "":
            return self
        if isinstance(part, Composite) and not part.parts:
            return self
        self.parts.append(part)
        return self

    def __len__(self) -> int:
        return len(self.parts)

    def __str__(self) -> str:
        if len(self.parts) == 1:
            return str(self.parts[0])
        return "(" + f") {self.kind} (".join(str(part) for part in self.parts) + ")"

    def __repr__(self) -> str:
        return f"Composite({self.kind!r}, {self.parts!r})"

    @property
    def params(self) -> Dict[str, Any]:
        """Bound values of every fragment in the group, nested groups included."""
        params: Dict[str, Any] = {}
        for part in self.parts:
            if isinstance(part, (ConditionFragment, Composite)):
                params.update(part.params)
        return params


def compose(tree: Any, composite: Optional[Composite] = None) -> Optional[Composite]:
    """
    Build a composite from a condition tree.

    Keys named ``AND``/``OR`` (optionally suffixed by digits, e.g. ``OR2``)
    open a nested group; a list under any other key becomes an AND group.
    Falsy entries are skipped. Returns ``None`` when no condition remains.
    """
    if not tree:
        return None
    if composite is None:
        composite = Composite("AND")

    items = tree.items() if isinstance(tree, Mapping) else enumerate(tree)
    for key, condition in items:
        if not condition:
            continue
        kind = str(key).rstrip("0123456789")
        if kind in GROUP_KINDS:
            composite.add(compose(condition, Composite(kind)))
        elif isinstance(condition, (list, tuple, Mapping)):
            composite.add(compose(condition, Composite("AND")))
        else:
            composite.add(condition)

    return composite if composite.parts else None
