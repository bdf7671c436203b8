"""Record - Typed documents persisted through an IndexesCommand.

A Record subclass declares its document fields statically as a Pydantic
model. Saving runs an explicit pipeline of stages instead of overridable
hooks:

    validate -> diff -> persist -> commit

Any stage may halt the pipeline (diff halts when nothing changed). Callers
assemble their own pipeline by passing different stages, e.g. to add an
audit stage before persist:

    pipeline = DEFAULT_SAVE_PIPELINE.with_stage(audit_stage, before=persist_stage)
    save(movie, movies_command, pipeline)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

from meilirecord.indexes_command import InvalidArgument
from meilirecord.models import NOT_FOUND

if TYPE_CHECKING:
    from meilirecord.connection import Connection
    from meilirecord.indexes_command import IndexesCommand


R = TypeVar("R", bound="Record")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def camel_to_snake(name: str) -> str:
    """BlogPost -> blog_post, HTTPLog -> http_log."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


_IRREGULAR_PLURALS = {
    "child": "children",
    "foot": "feet",
    "goose": "geese",
    "leaf": "leaves",
    "loaf": "loaves",
    "man": "men",
    "mouse": "mice",
    "person": "people",
    "thief": "thieves",
    "tooth": "teeth",
    "woman": "women",
}

_F_PLURALS = re.compile(r"(?:([^f])fe|([lr])f)$")


def pluralize(word: str) -> str:
    """English plural for index names: category -> categories, leaf -> leaves.

    Irregular nouns are matched on the last snake_case segment, so
    sales_person -> sales_people.
    """
    head, _, last = word.rpartition("_")
    if last in _IRREGULAR_PLURALS:
        return head + ("_" if head else "") + _IRREGULAR_PLURALS[last]
    if _F_PLURALS.search(word):
        return _F_PLURALS.sub(lambda m: (m.group(1) or m.group(2)) + "ves", word)
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"


class Record(BaseModel):
    """Base class for documents stored in one Meilisearch index.

    Subclasses declare fields as usual for Pydantic and may override:
        primary_key: Name of the primary key field (default "id").
        index_uid: Index name. Derived from the class name if not set
            (Movie -> movies, BlogPost -> blog_posts).

    Example:
        class Movie(Record):
            id: int | None = None
            title: str
            genres: list[str] = []
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    primary_key: ClassVar[str] = "id"
    index_uid: ClassVar[str | None] = None

    # Attribute values as last loaded from or saved to the server; None for new records
    _old_attributes: dict[str, Any] | None = PrivateAttr(default=None)

    @classmethod
    def index_name(cls) -> str:
        if cls.index_uid:
            return cls.index_uid
        return pluralize(camel_to_snake(cls.__name__))

    @classmethod
    def attributes(cls) -> list[str]:
        """Declared document field names."""
        return list(cls.model_fields)

    @classmethod
    def from_document(cls: type[R], document: dict[str, Any]) -> R:
        """Build a record from a document returned by the server."""
        record = cls.model_validate(document)
        record.mark_clean()
        return record

    @property
    def is_new_record(self) -> bool:
        return self._old_attributes is None

    def get_primary_key(self) -> Any:
        return getattr(self, self.primary_key, None)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def dirty_attributes(self) -> dict[str, Any]:
        """Fields changed since the last load or save. All fields for new records."""
        current = self.to_document()
        if self._old_attributes is None:
            return current
        return {
            name: value
            for name, value in current.items()
            if name not in self._old_attributes or self._old_attributes[name] != value
        }

    def mark_clean(self) -> None:
        self._old_attributes = self.to_document()

    def mark_new(self) -> None:
        self._old_attributes = None


def command_for(record_cls: type[Record], connection: Connection) -> IndexesCommand:
    """Create the IndexesCommand for the index a record class is stored in."""
    return connection.create_command(record_cls.index_name())


# =============================================================================
# Save Pipeline
# =============================================================================


@dataclass
class SaveContext:
    """State passed through the save stages."""

    record: Record
    command: IndexesCommand
    values: dict[str, Any] = field(default_factory=dict)
    response: Any = None
    halted: bool = False


SaveStage = Callable[[SaveContext], None]


def validate_stage(context: SaveContext) -> None:
    """Re-run model validation and require a primary key value."""
    record = context.record
    type(record).model_validate(record.model_dump())

    pk_value = record.get_primary_key()
    if pk_value is None or pk_value == "":
        raise InvalidArgument(
            f"{type(record).__name__}.{record.primary_key} must be set before saving"
        )


def diff_stage(context: SaveContext) -> None:
    """Collect dirty fields. Halts if nothing changed."""
    record = context.record
    values = record.dirty_attributes()
    if not values:
        context.halted = True
        return
    values[record.primary_key] = record.to_document()[record.primary_key]
    context.values = values


def persist_stage(context: SaveContext) -> None:
    """Send new records whole and existing records as partial updates."""
    record = context.record
    if record.is_new_record:
        context.response = context.command.add_documents([context.values], record.primary_key)
    else:
        context.response = context.command.update_documents([context.values], record.primary_key)


def commit_stage(context: SaveContext) -> None:
    context.record.mark_clean()


class SavePipeline:
    """An ordered list of save stages."""

    def __init__(self, stages: Sequence[SaveStage]) -> None:
        self.stages: tuple[SaveStage, ...] = tuple(stages)

    def with_stage(self, stage: SaveStage, before: SaveStage | None = None) -> SavePipeline:
        """Return a new pipeline with ``stage`` inserted before ``before`` (or appended)."""
        stages = list(self.stages)
        if before is None:
            stages.append(stage)
        else:
            stages.insert(stages.index(before), stage)
        return SavePipeline(stages)

    def without_stage(self, stage: SaveStage) -> SavePipeline:
        return SavePipeline([s for s in self.stages if s is not stage])

    def run(self, context: SaveContext) -> SaveContext:
        for stage in self.stages:
            stage(context)
            if context.halted:
                break
        return context


DEFAULT_SAVE_PIPELINE = SavePipeline([validate_stage, diff_stage, persist_stage, commit_stage])


# =============================================================================
# Persistence Operations
# =============================================================================


def save(
    record: Record,
    command: IndexesCommand,
    pipeline: SavePipeline | None = None,
) -> Any:
    """Persist a record. Returns the server's task summary, or None if nothing changed."""
    context = (pipeline or DEFAULT_SAVE_PIPELINE).run(SaveContext(record=record, command=command))
    return context.response


def find_one(
    record_cls: type[R],
    command: IndexesCommand,
    document_id: str | int,
) -> R | None:
    """Load one record by primary key value. Returns None if it does not exist."""
    document = command.get_document(document_id)
    if document is NOT_FOUND:
        return None
    return record_cls.from_document(document)


def delete_record(record: Record, command: IndexesCommand) -> Any:
    """Delete a record by its primary key. The record becomes new again."""
    response = command.delete_document(record.get_primary_key())
    record.mark_new()
    return response
