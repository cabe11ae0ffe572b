from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from annotation_tool.config import settings as app_settings
from annotation_tool.core.access import Access
from annotation_tool.core.events import Events
from annotation_tool.core.exceptions import TrackConstructionError, TransportError
from annotation_tool.core.json_coercion import parse_json_string
from annotation_tool.core.timestamps import parse_date
from annotation_tool.models.annotations import Annotations, to_annotation
from annotation_tool.models.user import User
from annotation_tool.services.transport import Transport

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("created_at", "updated_at", "deleted_at")

# Flags added by Track.parse. Accepted in updates, then recomputed from the attributes
DERIVED_KEYS = frozenset({"isMine", "isPublic"})

INVALID_ANNOTATIONS = "'annotations' attribute contains an invalid record"


def next_cid() -> str:
    # Client ids key local storage records that outlive the process
    return f"c{uuid.uuid4().hex}"


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TrackAttributes(BaseModel):
    """Persisted state of a track. Only explicitly set fields are serialized."""

    id: str | int | None = None
    name: Any = None
    description: Any = None
    access: Any = Access.PUBLIC
    tags: Any = None
    settings: Any = None
    created_at: Any = None
    updated_at: Any = None
    deleted_at: Any = None
    created_by: str | int | None = None
    created_by_nickname: str | None = None
    updated_by: str | int | None = None
    updated_by_nickname: str | None = None
    deleted_by: str | int | None = None
    deleted_by_nickname: str | None = None


ATTRIBUTE_NAMES = frozenset(TrackAttributes.model_fields)


class TrackPhase(Enum):
    PENDING = "pending"
    IDENTITY_ASSIGNED_UNFETCHED = "identity_assigned_unfetched"
    IDENTITY_ASSIGNED_FETCHED = "identity_assigned_fetched"


@dataclass(frozen=True)
class TrackContext:
    """Everything a track needs from its surroundings, passed in instead of read from globals."""

    transport: Transport
    user: User | None = None
    local_storage: bool = False
    collection_url: str = "tracks"
    fetch_asynchronously: bool = False

    @classmethod
    def from_settings(
        cls, transport: Transport, user: User | None = None, collection_url: str = "tracks"
    ) -> TrackContext:
        return cls(
            transport=transport,
            user=user,
            local_storage=app_settings.local_storage,
            collection_url=collection_url,
            fetch_asynchronously=app_settings.fetch_asynchronously,
        )


@dataclass(frozen=True)
class TrackChanges:
    """Derived state an accepted update implies, applied together with the update."""

    adopt_id: str | int | None = None
    is_public: bool | None = None


@dataclass(frozen=True)
class ValidationResult:
    error: str | None = None
    changes: TrackChanges = field(default_factory=TrackChanges)

    @property
    def ok(self) -> bool:
        return self.error is None


class Track(Events):
    """
    A named, access controlled owner of an ordered annotation collection.

    Identity is resolved at construction: a server id, the client id under
    local storage, or nothing yet (pending creation). The annotations are
    fetched eagerly when the track is built with an id, and lazily the one
    time a server id is adopted through set().

    Events:
        ready(track): a server id was adopted
        change(track): an update was applied
        invalid(track, error): an update was rejected
    """

    def __init__(self, attrs: Mapping[str, Any] | None, ctx: TrackContext):
        super().__init__()

        if not attrs or attrs.get("name") is None:
            raise TrackConstructionError("'name' attribute is required")

        attrs = dict(attrs)
        self.ctx = ctx
        self.cid = next_cid()
        self.attributes = TrackAttributes(access=Access.PUBLIC)
        self.annotations: Annotations | None = None
        self.to_create = False
        self.ready = False
        self.is_mine = False
        self.is_public = True
        self.phase = TrackPhase.PENDING
        self.validation_error: str | None = None
        self._pending_fetch: asyncio.Task | None = None

        has_server_id = attrs.get("id") is not None
        if not has_server_id:
            if ctx.local_storage:
                attrs["id"] = self.cid
            self.to_create = True

        # The annotations url derives from the track url, so the id goes in first
        if attrs.get("id") is not None:
            self.attributes.id = attrs["id"]
        attrs.pop("id", None)

        raw_annotations = attrs.pop("annotations", None)
        if not isinstance(raw_annotations, list):
            raw_annotations = []
        try:
            self.annotations = Annotations(raw_annotations, self)
        except ValidationError as e:
            raise TrackConstructionError(INVALID_ANNOTATIONS, details=str(e)) from e

        if ctx.local_storage and attrs.get("created_by") is None and ctx.user is not None:
            attrs["created_by"] = ctx.user.id
            attrs["created_by_nickname"] = ctx.user.nickname

        if has_server_id:
            try:
                self.annotations.fetch(asynchronous=False, add=True)
            except TransportError as e:
                raise TrackConstructionError(
                    f"Unable to fetch the annotations of track {self.id}", details=str(e)
                ) from e
            self.phase = TrackPhase.IDENTITY_ASSIGNED_FETCHED
            self.ready = True

        for key in ("tags", "settings"):
            if attrs.get(key) is not None:
                attrs[key] = parse_json_string(attrs[key])

        result = self.validate(attrs)
        if result.error:
            raise TrackConstructionError(result.error)
        self._apply(attrs, result.changes)

    def __repr__(self) -> str:
        return f"Track(id={self.id!r}, name={self.attributes.name!r}, phase={self.phase.value})"

    @property
    def id(self) -> str | int | None:
        return self.attributes.id

    @property
    def url(self) -> str:
        collection_url = self.ctx.collection_url.rstrip("/")
        if self.id is None:
            return collection_url
        return f"{collection_url}/{self.id}"

    def get(self, key: str, default: Any = None) -> Any:
        if key not in ATTRIBUTE_NAMES:
            return default
        value = getattr(self.attributes, key)
        return default if value is None else value

    @staticmethod
    def parse(data: Mapping[str, Any], user: User | None = None) -> dict[str, Any]:
        """
        Turn a stored or received record into track attributes.

        Accepts the record itself or a wrapper holding it under 'attributes'
        and returns the same shape. Dates become millisecond timestamps,
        settings and tags are decoded and the isMine/isPublic flags are added.
        """
        wrapped = isinstance(data.get("attributes"), Mapping)
        attr = dict(data["attributes"] if wrapped else data)

        for key in TIMESTAMP_FIELDS:
            if key in attr:
                attr[key] = parse_date(attr[key])

        parsed_settings = parse_json_string(attr.get("settings"))
        if parsed_settings is not None or "settings" in attr:
            attr["settings"] = parsed_settings

        attr["isMine"] = user is not None and attr.get("created_by") == user.id
        attr["isPublic"] = Access.is_public(attr.get("access"))

        if attr.get("tags") is not None:
            attr["tags"] = parse_json_string(attr["tags"])

        if wrapped:
            return {**data, "attributes": attr}
        return attr

    def validate(self, attr: Mapping[str, Any]) -> ValidationResult:
        """
        Check a partial update. Only the keys present in attr are looked at.

        Nothing is mutated here: the id adoption and the new public flag an
        update implies are returned as changes for set() to apply.
        """
        adopt_id = None
        is_public = None

        for key in attr:
            if key not in ATTRIBUTE_NAMES and key not in DERIVED_KEYS and key != "annotations":
                return ValidationResult(f"'{key}' is not a track attribute")

        new_id = attr.get("id")
        if new_id is not None and str(new_id) != str(self.id):
            if not self.to_create:
                return ValidationResult("'id' attribute can not be modified after identity assignment!")
            adopt_id = new_id

        if "name" in attr and attr["name"] is None:
            return ValidationResult("'name' attribute is required")

        if attr.get("description") is not None and not isinstance(attr["description"], str):
            return ValidationResult("'description' attribute must be a string")

        if attr.get("settings") is not None and parse_json_string(attr["settings"]) is None:
            return ValidationResult("'settings' attribute must be a string or a JSON object")

        if attr.get("tags") is not None and parse_json_string(attr["tags"]) is None:
            return ValidationResult("'tags' attribute must be a string or a JSON object")

        if "access" in attr:
            if not Access.contains(attr["access"]):
                return ValidationResult("'access' attribute is not valid.")
            if attr["access"] != self.attributes.access:
                is_public = Access.is_public(attr["access"])

        if "created_at" in attr:
            created_at = attr["created_at"]
            current = self.attributes.created_at
            if current is not None and current != created_at:
                return ValidationResult("'created_at' attribute can not be modified after initialization!")
            if created_at is not None and not is_number(created_at):
                return ValidationResult("'created_at' attribute must be a number!")

        if attr.get("updated_at") is not None and not is_number(attr["updated_at"]):
            return ValidationResult("'updated_at' attribute must be a number!")

        if attr.get("deleted_at") is not None and not is_number(attr["deleted_at"]):
            return ValidationResult("'deleted_at' attribute must be a number!")

        if isinstance(attr.get("annotations"), list):
            try:
                for record in attr["annotations"]:
                    to_annotation(record)
            except ValidationError:
                return ValidationResult(INVALID_ANNOTATIONS)

        return ValidationResult(changes=TrackChanges(adopt_id=adopt_id, is_public=is_public))

    def set(self, attr: Mapping[str, Any]) -> bool:
        """Validate and apply a partial update. Returns False, changing nothing, when rejected."""
        result = self.validate(attr)
        if result.error:
            self.validation_error = result.error
            logger.debug(f"Rejected update of {self!r}: {result.error}")
            self.trigger("invalid", self, result.error)
            return False

        self.validation_error = None
        self._apply(attr, result.changes)
        self.trigger("change", self)
        return True

    def _apply(self, attr: Mapping[str, Any], changes: TrackChanges) -> None:
        values = dict(attr)
        values.pop("id", None)
        annotations = values.pop("annotations", None)
        for key in DERIVED_KEYS:
            values.pop(key, None)

        for key in ("tags", "settings"):
            if values.get(key) is not None:
                values[key] = parse_json_string(values[key])
        if "access" in values:
            values["access"] = Access(values["access"])

        for key, value in values.items():
            setattr(self.attributes, key, value)

        if "created_by" in values:
            self.is_mine = self._is_current_user(values["created_by"])
        if changes.is_public is not None:
            self.is_public = changes.is_public

        if isinstance(annotations, list):
            self.annotations.add(annotations)

        if changes.adopt_id is not None:
            self._adopt_id(changes.adopt_id)

    def _adopt_id(self, new_id: str | int) -> None:
        self.attributes.id = new_id
        self.to_create = False
        self.set_url()
        self.ready = True
        self.phase = TrackPhase.IDENTITY_ASSIGNED_UNFETCHED
        self.trigger("ready", self)

        if len(self.annotations) == 0:
            self.fetch_annotations(asynchronous=self.ctx.fetch_asynchronously)
        else:
            self.phase = TrackPhase.IDENTITY_ASSIGNED_FETCHED

    def _is_current_user(self, user_id: Any) -> bool:
        return self.ctx.user is not None and user_id is not None and user_id == self.ctx.user.id

    def set_url(self) -> None:
        if self.annotations is not None:
            self.annotations.set_url(self)

    def fetch_annotations(self, asynchronous: bool = False) -> asyncio.Task | None:
        """
        Merge the stored annotations into the current collection.

        Used for the lazy load after an id is adopted and to retry it after a
        failure. Asynchronous loading needs a running event loop, without one
        the fetch blocks.
        """
        if self.id is None:
            return None
        if self._pending_fetch is not None and not self._pending_fetch.done():
            return self._pending_fetch

        if asynchronous and not _has_running_loop():
            asynchronous = False

        try:
            task = self.annotations.fetch(asynchronous=asynchronous, add=True)
        except TransportError as e:
            logger.error(f"Unable to fetch annotations of {self!r}: {e}")
            return None

        if task is None:
            self.phase = TrackPhase.IDENTITY_ASSIGNED_FETCHED
            return None

        self._pending_fetch = task
        task.add_done_callback(self._on_fetch_done)
        return task

    def _on_fetch_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Unable to fetch annotations of {self!r}: {error}")
            return
        self.phase = TrackPhase.IDENTITY_ASSIGNED_FETCHED

    def to_json(self) -> dict[str, Any]:
        """Serializable snapshot: tags re-encoded as a JSON string, annotations left out."""
        json_data = self.attributes.model_dump(mode="json", exclude_unset=True)
        if json_data.get("tags") is not None:
            json_data["tags"] = json.dumps(json_data["tags"], separators=(",", ":"))
        return json_data

    def save(self) -> bool:
        """
        Persist the track and apply what the backend answers.

        A pending track is created on the collection url, which is how the
        server id arrives. Under local storage the client id is the key, so
        the record is upserted at the track url. Transport failures raise.
        """
        transport = self.ctx.transport
        data = self.to_json()

        if self.to_create and not self.ctx.local_storage:
            response = transport.create(self.ctx.collection_url, data)
        else:
            response = transport.update(self.url, data)

        if not response:
            return True
        return self.set(self.parse(response, self.ctx.user))

    def destroy(self) -> None:
        if self.id is not None and (not self.to_create or self.ctx.local_storage):
            self.ctx.transport.delete(self.url)
        self.trigger("destroy", self)


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
