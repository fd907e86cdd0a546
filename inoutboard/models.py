"""
Board domain models, request bodies and push-channel messages.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

PRESENT = "IN"


class Person(BaseModel):
    id: int
    name: str
    group: str
    status: str = PRESENT
    comment: str = ""
    estimated_return: str = ""
    resource_id: int | None = None  # nullable reference to a Resource
    resource_name: str | None = None  # joined from resources, read-only
    last_changed: datetime


class Resource(BaseModel):
    id: int
    name: str


class Group(BaseModel):
    id: int
    name: str


class PersonCreate(BaseModel):
    name: str = ""
    group: str = ""
    status: str | None = None


class PersonUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    name: str | None = None
    group: str | None = None
    status: str | None = None
    comment: str | None = None
    estimated_return: str | None = None
    resource_id: int | Literal[""] | None = None


class NameBody(BaseModel):
    name: str = ""


class LoginRequest(BaseModel):
    password: str = ""


class LogoUpload(BaseModel):
    image: str = ""


class PersonAdded(BaseModel):
    type: Literal["person_added"] = "person_added"
    person: Person


class PersonUpdated(BaseModel):
    type: Literal["person_updated"] = "person_updated"
    person: Person


class PersonRemoved(BaseModel):
    type: Literal["person_removed"] = "person_removed"
    id: int


class ResourceAdded(BaseModel):
    type: Literal["resource_added"] = "resource_added"
    resource: Resource


class ResourceUpdated(BaseModel):
    type: Literal["resource_updated"] = "resource_updated"
    resource: Resource


class ResourceRemoved(BaseModel):
    type: Literal["resource_removed"] = "resource_removed"
    id: int


class InitMessage(BaseModel):
    """Full snapshot sent once to every observer when it connects."""

    type: Literal["init"] = "init"
    persons: list[Person]
    resources: list[Resource]


class Ping(BaseModel):
    type: Literal["ping"] = "ping"


class Pong(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["pong"]


ServerMessage = Annotated[
    InitMessage
    | Ping
    | PersonAdded
    | PersonUpdated
    | PersonRemoved
    | ResourceAdded
    | ResourceUpdated
    | ResourceRemoved,
    Field(discriminator="type"),
]

server_message_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)
