"""Per-document mutation actions used by the migrator.

Each action knows how to stage its mutation for one document snapshot onto a
:class:`~dataknobs_traverse.traversable.WriteBatch`. The migrator's batch
handler only ever calls :meth:`stage`, so it never needs to know which call
shape produced the action.

``update(...)`` accepts three call shapes, resolved once per call by
:func:`resolve_update_action`:

- ``update(update_data, predicate=None)`` -> :class:`StaticUpdate`
- ``update(field, value, predicate=None)`` -> :class:`FieldUpdate`
- ``update(get_update_data, predicate=None)`` -> :class:`ComputedUpdate`
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from .exceptions import UpdateArgumentError
from .traversable import WriteBatch

UpdatePredicate = Callable[[Any], bool]
UpdateDataGetter = Callable[[Any], Mapping[str, Any]]


def _passes(predicate: UpdatePredicate | None, snapshot: Any) -> bool:
    if predicate is None:
        return True
    return bool(predicate(snapshot))


@dataclass(frozen=True)
class StaticUpdate:
    """Merge the same update data into every matching document."""

    data: Mapping[str, Any]
    predicate: UpdatePredicate | None = None

    def stage(self, batch: WriteBatch, snapshot: Any) -> bool:
        if not _passes(self.predicate, snapshot):
            return False
        batch.stage_field_merge(snapshot.reference, dict(self.data))
        return True


@dataclass(frozen=True)
class FieldUpdate:
    """Set a single field (name or field path) on every matching document."""

    field: Any
    value: Any
    predicate: UpdatePredicate | None = None

    def stage(self, batch: WriteBatch, snapshot: Any) -> bool:
        if not _passes(self.predicate, snapshot):
            return False
        batch.stage_field_path_update(snapshot.reference, self.field, self.value)
        return True


@dataclass(frozen=True)
class ComputedUpdate:
    """Merge update data computed from each matching document."""

    get_update_data: UpdateDataGetter
    predicate: UpdatePredicate | None = None

    def stage(self, batch: WriteBatch, snapshot: Any) -> bool:
        if not _passes(self.predicate, snapshot):
            return False
        batch.stage_field_merge(snapshot.reference, dict(self.get_update_data(snapshot)))
        return True


@dataclass(frozen=True)
class SetDocument:
    """Overwrite (or merge into) every matching document.

    ``data`` is either a mapping or a callable computing the mapping from
    the document snapshot.
    """

    data: Mapping[str, Any] | UpdateDataGetter
    predicate: UpdatePredicate | None = None
    merge: bool = False

    def stage(self, batch: WriteBatch, snapshot: Any) -> bool:
        if not _passes(self.predicate, snapshot):
            return False
        data = self.data(snapshot) if callable(self.data) else self.data
        batch.stage_set(snapshot.reference, dict(data), merge=self.merge)
        return True


@dataclass(frozen=True)
class DeleteField:
    """Remove a field from every matching document."""

    field: Any
    predicate: UpdatePredicate | None = None

    def stage(self, batch: WriteBatch, snapshot: Any) -> bool:
        if not _passes(self.predicate, snapshot):
            return False
        batch.stage_field_delete(snapshot.reference, self.field)
        return True


@dataclass(frozen=True)
class RenameField:
    """Move the value of ``old_field`` to ``new_field``.

    Documents without ``old_field`` are left untouched.
    """

    old_field: str
    new_field: str
    predicate: UpdatePredicate | None = None

    def stage(self, batch: WriteBatch, snapshot: Any) -> bool:
        if not _passes(self.predicate, snapshot):
            return False
        try:
            value = snapshot.get(self.old_field)
        except KeyError:
            return False
        batch.stage_field_path_update(snapshot.reference, self.new_field, value)
        batch.stage_field_delete(snapshot.reference, self.old_field)
        return True


UpdateAction = Union[StaticUpdate, FieldUpdate, ComputedUpdate]
MigrationAction = Union[StaticUpdate, FieldUpdate, ComputedUpdate, SetDocument, DeleteField, RenameField]


def _as_predicate(value: Any) -> UpdatePredicate | None:
    if value is None or callable(value):
        return value
    raise UpdateArgumentError(
        f"predicate must be callable, got {type(value).__name__}",
        context={"predicate_type": type(value).__name__},
    )


def _check_field(field: Any) -> None:
    if isinstance(field, Mapping):
        raise UpdateArgumentError("field must be a field name or field path, not a mapping")
    if isinstance(field, str) and not field:
        raise UpdateArgumentError("field must be a non-empty field name")


def resolve_update_action(*args: Any) -> UpdateAction:
    """Resolve ``update(...)`` arguments into a single update action.

    Resolution rule:

    1. If the first argument is callable, it is the update-data getter form.
    2. Otherwise, if exactly two arguments were given and the second is not
       callable, it is the field/value form. Three arguments are always the
       field/value/predicate form.
    3. Otherwise it is the static update-data form.

    A ``None`` second argument after a mapping is treated as "no predicate".

    Args:
        *args: Positional arguments passed to ``update``

    Returns:
        One of StaticUpdate, FieldUpdate or ComputedUpdate

    Raises:
        UpdateArgumentError: If the arguments fit none of the call shapes
    """
    arg_count = len(args)
    if arg_count == 0 or arg_count > 3:
        raise UpdateArgumentError(
            f"update() takes 1 to 3 positional arguments but {arg_count} were given",
            context={"arg_count": arg_count},
        )

    first = args[0]
    second = args[1] if arg_count > 1 else None

    if callable(first):
        if arg_count > 2:
            raise UpdateArgumentError("update(get_update_data, predicate) takes at most 2 arguments")
        return ComputedUpdate(first, _as_predicate(second))

    is_field_form = arg_count == 3 or (
        arg_count == 2
        and not callable(second)
        and not (second is None and isinstance(first, Mapping))
    )
    if is_field_form:
        _check_field(first)
        predicate = args[2] if arg_count == 3 else None
        return FieldUpdate(first, second, _as_predicate(predicate))

    if not isinstance(first, Mapping) or not first:
        raise UpdateArgumentError("update data must be a non-empty mapping")
    return StaticUpdate(dict(first), _as_predicate(second))
