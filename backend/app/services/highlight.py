from __future__ import annotations

from app.services.calculator import DerivedSnapshot


def changed_fields(previous: DerivedSnapshot, current: DerivedSnapshot) -> set[str]:
    keys = set(previous.values) | set(current.values)
    return {key for key in keys if previous.values.get(key) != current.values.get(key)}


class ChangeHighlighter:
    """Tracks which derived values moved after the latest input edit.

    Nothing is highlighted until the first edit, so freshly loaded targets
    render without emphasis.
    """

    def __init__(self, snapshot: DerivedSnapshot) -> None:
        self.previous = snapshot
        self.current = snapshot
        self.last_changed: str | None = None

    @property
    def has_edits(self) -> bool:
        return self.last_changed is not None

    def record_edit(self, field_id: str, snapshot: DerivedSnapshot) -> set[str]:
        self.previous = self.current
        self.current = snapshot
        self.last_changed = field_id
        return self.changed()

    def reset(self, snapshot: DerivedSnapshot) -> None:
        self.previous = snapshot
        self.current = snapshot
        self.last_changed = None

    def highlighted(
        self,
        field_id: str,
        previous: DerivedSnapshot | None = None,
        current: DerivedSnapshot | None = None,
    ) -> bool:
        if not self.has_edits:
            return False
        before = previous if previous is not None else self.previous
        after = current if current is not None else self.current
        return before.values.get(field_id) != after.values.get(field_id)

    def changed(self) -> set[str]:
        if not self.has_edits:
            return set()
        return changed_fields(self.previous, self.current)
