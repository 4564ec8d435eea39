# PURPOSE: request/response schemas (Pydantic v2).
# Timestamps and status arrive as raw strings; they are parsed by
# lifecycle.parse_instant/parse_status so failures keep their own error kind.

from datetime import datetime
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .lifecycle import TaskStatus


class CustomTaskCreate(BaseModel):
    type: Literal["custom"]
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    start_time: str | None = None
    deadline: str
    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [
                {"type": "custom", "title": "Submit report", "deadline": "2026-12-31T18:00:00Z"},
                {
                    "type": "custom",
                    "title": "Team sync",
                    "start_time": "2026-12-31T17:00:00Z",
                    "deadline": "2026-12-31T18:00:00Z",
                },
            ]
        },
    )


class SimpleTaskCreate(BaseModel):
    type: Literal["simple"]
    text_input: str = Field(alias="textInput", min_length=1, max_length=2000)
    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        populate_by_name=True,
        json_schema_extra={
            "examples": [{"type": "simple", "textInput": "Call mom tomorrow at 6 PM"}]
        },
    )


# Tagged on "type"; the router attaches Body(discriminator="type")
TaskCreate = Union[CustomTaskCreate, SimpleTaskCreate]


class TaskUpdate(BaseModel):
    # Any subset; explicitly sent nulls are distinguished via model_fields_set
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    start_time: str | None = None
    deadline: str | None = None
    status: str | None = None
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {"title": "New title"},
                {"deadline": "2026-12-31T20:00:00Z"},
                {"status": "Successful"},
            ]
        },
    )


class TaskStatusPatch(BaseModel):
    status: str
    model_config = ConfigDict(json_schema_extra={"examples": [{"status": "Successful"}]})


class Task(BaseModel):
    id: int
    user_id: int
    title: str
    description: str | None
    start_time: datetime | None
    deadline: datetime
    status: TaskStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)  # ORM -> schema


class TaskEnvelope(BaseModel):
    task: Task


class TaskListEnvelope(BaseModel):
    tasks: list[Task]


class MessageResponse(BaseModel):
    message: str


# --- User / Auth schemas ---


class UserCredentials(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=6, max_length=128)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserPublic(BaseModel):
    id: int
    username: str
    created_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)  # allow ORM -> schema


class RegisterResponse(BaseModel):
    message: str = "User registered"
    user: UserPublic
    token: str


class TokenResponse(BaseModel):
    message: str = "Login successful"
    token: str
    token_type: Literal["bearer"] = "bearer"
    model_config = ConfigDict(
        json_schema_extra={"examples": [{"message": "Login successful", "token": "<jwt>", "token_type": "bearer"}]}
    )
