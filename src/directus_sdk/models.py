"""Loosely schemaed Directus records and the endpoint metadata bound to them."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, TypeVar
from urllib.parse import urlencode

from directus_sdk.errors import MissingIdError, TypeMismatchError

D = TypeVar("D", bound="DirectusData")


@dataclass(frozen=True, slots=True)
class CollectionMetadata:
    """Where a record type lives on the server.

    ``endpoint_prefix`` is ``/items/`` for user collections and ``/`` for system
    collections such as ``users``. ``default_update_fields`` restricts which
    changed fields an update transmits.
    """

    endpoint_name: str
    endpoint_prefix: str = "/items/"
    default_fields: str = "*"
    websocket_endpoint: str | None = None
    default_update_fields: tuple[str, ...] | None = None

    @property
    def websocket_collection(self) -> str:
        return self.websocket_endpoint or self.endpoint_name


def _parse_iso_datetime(value: str) -> datetime:
    # fromisoformat only accepts a trailing "Z" from Python 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _same_value(current: Any, value: Any) -> bool:
    return type(current) is type(value) and current == value


class DirectusData:
    """A record as received from the server plus local, unsaved changes.

    Reads see a pending change first and fall back to the received value.
    Writes that leave the effective value unchanged are ignored, so
    ``needs_saving`` only reports real edits.
    """

    collection_metadata: ClassVar[CollectionMetadata | None] = None

    def __init__(self, raw: Mapping[str, Any]) -> None:
        if raw.get("id") is None:
            raise MissingIdError("A Directus record requires an 'id' field")
        self._raw: dict[str, Any] = dict(raw)
        self.updated_properties: dict[str, Any] = {}

    @classmethod
    def with_id(cls: type[D], item_id: str | int) -> D:
        return cls({"id": item_id})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, needs_saving={self.needs_saving})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirectusData):
            return NotImplemented
        return type(self) is type(other) and self.to_map() == other.to_map()

    # -- raw access ---------------------------------------------------------

    def get_value(self, key: str) -> Any:
        pending = self.updated_properties.get(key)
        return pending if pending is not None else self._raw.get(key)

    def set_value(self, key: str, value: Any) -> None:
        if value is None and self._raw.get(key) is None:
            # Back to the received null: nothing left to send
            self.updated_properties.pop(key, None)
            return
        current = self.get_value(key)
        if current is not None and _same_value(current, value):
            return
        self.updated_properties[key] = value

    @property
    def raw_data(self) -> dict[str, Any]:
        return dict(self._raw)

    @property
    def needs_saving(self) -> bool:
        return bool(self.updated_properties)

    def has_changed_in(self, key: str) -> bool:
        return key in self.updated_properties

    @property
    def id(self) -> str:
        return str(self.get_value("id"))

    @property
    def int_id(self) -> int | None:
        value = self.get_value("id")
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    @property
    def user_created(self) -> str | None:
        value = self.get_value("user_created")
        return None if value is None else str(value)

    @user_created.setter
    def user_created(self, value: str | None) -> None:
        self.set_value("user_created", value)

    def to_map(self) -> dict[str, Any]:
        """Received fields overlaid with pending changes."""
        return {**self._raw, **self.updated_properties}

    def map_for_object_creation(self) -> dict[str, Any]:
        """Payload for a create request; the server assigns the id."""
        payload = self.to_map()
        payload.pop("id", None)
        return payload

    # -- typed access -------------------------------------------------------

    def get_str(self, key: str) -> str | None:
        value = self.get_value(key)
        if value is not None and not isinstance(value, str):
            raise TypeMismatchError(key, "str", value)
        return value

    def get_int(self, key: str) -> int | None:
        value = self.get_value(key)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeMismatchError(key, "int", value)
        return value

    def get_float(self, key: str) -> float | None:
        value = self.get_value(key)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeMismatchError(key, "float", value)
        return float(value)

    def get_bool(self, key: str) -> bool | None:
        value = self.get_value(key)
        if value is not None and not isinstance(value, bool):
            raise TypeMismatchError(key, "bool", value)
        return value

    def get_list(self, key: str) -> list[Any]:
        """A missing list reads as empty."""
        value = self.get_value(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise TypeMismatchError(key, "list", value)
        return value

    def get_dict(self, key: str) -> dict[str, Any] | None:
        value = self.get_value(key)
        if value is not None and not isinstance(value, dict):
            raise TypeMismatchError(key, "dict", value)
        return value

    def get_datetime(self, key: str) -> datetime | None:
        value = self.get_value(key)
        if value is None or isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise TypeMismatchError(key, "ISO-8601 datetime", value)
        try:
            return _parse_iso_datetime(value)
        except ValueError as e:
            raise TypeMismatchError(key, "ISO-8601 datetime", value) from e

    def set_datetime(self, key: str, value: datetime | None) -> None:
        if value is None:
            self.set_value(key, None)
            return
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        self.set_value(key, value.isoformat())

    def get_geometry(self, key: str) -> DirectusGeometry | None:
        value = self.get_value(key)
        if value is None:
            return None
        if not isinstance(value, dict):
            raise TypeMismatchError(key, "geometry object", value)
        return DirectusGeometry.from_json(value)

    def set_geometry(self, key: str, value: DirectusGeometry | None) -> None:
        self.set_value(key, None if value is None else value.to_json())

    def get_file(self, key: str) -> DirectusFile | None:
        """A file field holds either the expanded file record or just its id."""
        value = self.get_value(key)
        if value is None:
            return None
        if isinstance(value, dict):
            return DirectusFile(value)
        if isinstance(value, str):
            return DirectusFile.from_id(value)
        raise TypeMismatchError(key, "file object or id", value)

    def set_file(self, key: str, value: DirectusFile | None) -> None:
        self.set_value(key, None if value is None else value.id)


class DirectusItem(DirectusData):
    """A record of a user-defined collection."""

    @classmethod
    def new(cls: type[D]) -> D:
        return cls({"id": str(uuid.uuid4())})


class UserStatus(str, Enum):
    DRAFT = "draft"
    INVITED = "invited"
    UNVERIFIED = "unverified"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


class DirectusUser(DirectusData):
    collection_metadata = CollectionMetadata("users", endpoint_prefix="/")

    @classmethod
    def new_user(
        cls,
        email: str,
        password: str,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        role: str | None = None,
        **other_properties: Any,
    ) -> DirectusUser:
        data: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password": password,
        }
        if first_name is not None:
            data["first_name"] = first_name
        if last_name is not None:
            data["last_name"] = last_name
        if role is not None:
            data["role"] = role
        data.update(other_properties)
        return cls(data)

    @property
    def email(self) -> str | None:
        return self.get_str("email")

    @email.setter
    def email(self, value: str | None) -> None:
        self.set_value("email", value)

    @property
    def password(self) -> str | None:
        return self.get_str("password")

    @password.setter
    def password(self, value: str | None) -> None:
        self.set_value("password", value)

    @property
    def first_name(self) -> str | None:
        return self.get_str("first_name")

    @first_name.setter
    def first_name(self, value: str | None) -> None:
        self.set_value("first_name", value)

    @property
    def last_name(self) -> str | None:
        return self.get_str("last_name")

    @last_name.setter
    def last_name(self, value: str | None) -> None:
        self.set_value("last_name", value)

    @property
    def description(self) -> str | None:
        return self.get_str("description")

    @description.setter
    def description(self, value: str | None) -> None:
        self.set_value("description", value)

    @property
    def role(self) -> str | None:
        """Role UUID; an expanded role object yields its id."""
        value = self.get_value("role")
        if isinstance(value, dict):
            role_id = value.get("id")
            return None if role_id is None else str(role_id)
        return self.get_str("role")

    @role.setter
    def role(self, value: str | None) -> None:
        self.set_value("role", value)

    @property
    def avatar(self) -> str | None:
        value = self.get_value("avatar")
        if isinstance(value, dict):
            avatar_id = value.get("id")
            return None if avatar_id is None else str(avatar_id)
        return self.get_str("avatar")

    @avatar.setter
    def avatar(self, value: str | None) -> None:
        self.set_value("avatar", value)

    @property
    def status(self) -> UserStatus | None:
        value = self.get_value("status")
        if value is None:
            return None
        try:
            return UserStatus(value)
        except ValueError:
            return None

    @status.setter
    def status(self, value: UserStatus | None) -> None:
        self.set_value("status", None if value is None else value.value)

    @property
    def full_name(self) -> str:
        first = self.first_name or ""
        last = self.last_name or ""
        if not first:
            return last
        if not last:
            return first
        return f"{first} {last}"


class DirectusFile(DirectusData):
    collection_metadata = CollectionMetadata("files", endpoint_prefix="/")

    @classmethod
    def from_id(cls, file_id: str, title: str | None = None) -> DirectusFile:
        data: dict[str, Any] = {"id": file_id}
        if title is not None:
            data["title"] = title
        return cls(data)

    @property
    def title(self) -> str | None:
        return self.get_str("title")

    @property
    def type(self) -> str | None:
        return self.get_str("type")

    @property
    def uploaded_on(self) -> datetime | None:
        return self.get_datetime("uploaded_on")

    @property
    def filesize(self) -> int | None:
        return _as_int(self.get_value("filesize"))

    @property
    def width(self) -> int | None:
        return _as_int(self.get_value("width"))

    @property
    def height(self) -> int | None:
        return _as_int(self.get_value("height"))

    @property
    def duration(self) -> int | None:
        return _as_int(self.get_value("duration"))

    @property
    def description(self) -> str | None:
        return self.get_str("description")

    @property
    def metadata(self) -> dict[str, Any] | None:
        return self.get_dict("metadata")

    @property
    def ratio(self) -> float:
        """Width over height, 1.0 when either is unknown."""
        width, height = self.width, self.height
        if not width or not height:
            return 1.0
        return width / height

    def download_url(
        self,
        base_url: str,
        *,
        width: int | None = None,
        height: int | None = None,
        quality: int | None = None,
        **other: str,
    ) -> str:
        """URL of the asset, optionally resized by the server."""
        params: dict[str, str | int] = {}
        if width is not None:
            params["width"] = width
        if height is not None:
            params["height"] = height
        if quality is not None:
            params["quality"] = quality
        params.update(other)
        url = f"{base_url.rstrip('/')}/assets/{self.id}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url


def _as_int(value: Any) -> int | None:
    # Directus returns bigint columns such as filesize as strings
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


@dataclass(frozen=True, slots=True)
class DirectusGeometry:
    """GeoJSON geometry as stored by Directus; points are ``[x, y]``."""

    type: str
    coordinates: tuple[float, ...]

    @classmethod
    def map_point(cls, latitude: float, longitude: float) -> DirectusGeometry:
        return cls("Point", (longitude, latitude))

    @classmethod
    def point(cls, x: float, y: float) -> DirectusGeometry:
        return cls("Point", (x, y))

    def _point_coordinate(self, index: int) -> float | None:
        if self.type != "Point" or len(self.coordinates) <= index:
            return None
        return self.coordinates[index]

    @property
    def latitude(self) -> float | None:
        return self._point_coordinate(1)

    @property
    def longitude(self) -> float | None:
        return self._point_coordinate(0)

    @property
    def x(self) -> float | None:
        return self._point_coordinate(0)

    @property
    def y(self) -> float | None:
        return self._point_coordinate(1)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> DirectusGeometry | None:
        geometry_type = data.get("type")
        coordinates = data.get("coordinates")
        if not isinstance(geometry_type, str) or not isinstance(coordinates, list):
            return None
        if not all(
            isinstance(c, (int, float)) and not isinstance(c, bool) for c in coordinates
        ):
            return None
        return cls(geometry_type, tuple(float(c) for c in coordinates))

    def to_json(self) -> dict[str, Any]:
        return {"type": self.type, "coordinates": list(self.coordinates)}
