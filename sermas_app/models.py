"""
Pydantic DTOs for the SERMAS platform API.

These models mirror the camelCase JSON shapes exchanged with the platform.
Unknown fields are kept on the model so that payloads forwarded to the local
event bus carry everything the platform sent. Event DTOs declare every
field optional: the platform may send partial records and those events must
still reach the local bus.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BaseDTO(BaseModel):
    """
    Base configuration for all DTOs.

    - Aliases are generated in camelCase for JSON serialization.
    - Allows population by field name (snake_case) in Python code.
    - Extra fields sent by the platform are preserved.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# =============================================================================
# Platform
# =============================================================================


class AccessTokenDto(BaseDTO):
    """Client credentials token returned by the platform."""
    access_token: str = Field(..., description="Bearer token for API calls.")
    refresh_token: Optional[str] = Field(default=None)
    expires_in: Optional[int] = Field(default=None, description="Lifetime in seconds.")
    token_type: Optional[str] = Field(default="Bearer")


class AppToolsDto(BaseDTO):
    """A tool an application exposes to the dialogue engine."""
    name: str = Field(..., description="Tool name, unique within the repository.")
    description: str = Field(default="", description="What the tool does.")
    schema_: Optional[List[Dict[str, Any]]] = Field(default=None, alias="schema")
    request_confirmation: Optional[bool] = Field(default=None)
    skip_response: Optional[bool] = Field(default=None)
    return_direct: Optional[bool] = Field(default=None)
    url: Optional[str] = Field(default=None)


class PlatformAppDto(BaseDTO):
    """Descriptor of an application registered on the platform."""
    app_id: str = Field(..., description="Application identifier.")
    name: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    owner_id: Optional[str] = Field(default=None)
    public: Optional[bool] = Field(default=None)
    tools: List[AppToolsDto] = Field(default_factory=list)
    modules: List[Dict[str, Any]] = Field(default_factory=list)
    repository: Optional[Dict[str, Any]] = Field(default=None)
    settings: Optional[Dict[str, Any]] = Field(default=None)


# =============================================================================
# Dialogue
# =============================================================================


class DialogueToolsRepositoryOptionsDto(BaseDTO):
    """Options applied to a dialogue tools repository."""
    triggers_once: Optional[bool] = Field(default=None)
    exact_match: Optional[bool] = Field(default=None)
    context: Optional[str] = Field(default=None)


class DialogueMessageDto(BaseDTO):
    """A chat message exchanged within a session."""
    app_id: str = Field(...)
    session_id: Optional[str] = Field(default=None)
    text: str = Field(default="")
    actor: str = Field(default="agent", description="Either 'agent' or 'user'.")
    language: Optional[str] = Field(default=None)
    gender: Optional[str] = Field(default=None)
    emotion: Optional[str] = Field(default=None)
    llm: Optional[Dict[str, Any]] = Field(default=None)
    ts: Optional[datetime] = Field(default=None)


class DialogueToolTriggeredEventDto(BaseDTO):
    """Emitted by the platform when the dialogue engine triggers a tool."""
    app_id: Optional[str] = Field(default=None)
    session_id: Optional[str] = Field(default=None)
    name: Optional[str] = Field(default=None, description="Name of the triggered tool.")
    values: Optional[Dict[str, Any]] = Field(default_factory=dict)
    repository_id: Optional[str] = Field(default=None)
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")


# =============================================================================
# Session
# =============================================================================


class SessionDto(BaseDTO):
    """A user session within an application."""
    session_id: Optional[str] = Field(default=None)
    app_id: Optional[str] = Field(default=None)
    agent_id: Optional[str] = Field(default=None)
    user_id: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)
    modified_at: Optional[datetime] = Field(default=None)
    closed_at: Optional[datetime] = Field(default=None)
    settings: Optional[Dict[str, Any]] = Field(default=None)


class SessionChangedDto(BaseDTO):
    """Emitted by the platform when a session is created, updated or deleted."""
    app_id: Optional[str] = Field(default=None)
    operation: Optional[str] = Field(default=None, description="One of 'created', 'updated', 'deleted'.")
    record: Optional[SessionDto] = Field(default=None)


class AgentChangedDto(BaseDTO):
    """Emitted by the platform when an agent joins or updates within an app."""
    app_id: Optional[str] = Field(default=None)
    operation: Optional[str] = Field(default=None)
    record: Optional[Dict[str, Any]] = Field(default_factory=dict)


class SessionStorageRecordDto(BaseDTO):
    """A key/value record attached to a session or user."""
    storage_id: Optional[str] = Field(default=None)
    app_id: Optional[str] = Field(default=None)
    session_id: Optional[str] = Field(default=None)
    user_id: Optional[str] = Field(default=None)
    data: Dict[str, Any] = Field(default_factory=dict)


class SessionStorageSearchDto(BaseDTO):
    """Query for session storage records."""
    app_id: Optional[str] = Field(default=None)
    session_id: List[str] = Field(default_factory=list)
    user_id: List[str] = Field(default_factory=list)
    storage_id: List[str] = Field(default_factory=list)


# =============================================================================
# Auth / UI
# =============================================================================


class UpdateUserEventDto(BaseDTO):
    """Emitted by the platform on user login."""
    app_id: Optional[str] = Field(default=None)
    user_id: Optional[str] = Field(default=None)
    operation: Optional[str] = Field(default=None)
    record: Optional[Dict[str, Any]] = Field(default=None)


class UIInteractionEventDto(BaseDTO):
    """Emitted by the platform when a user interacts with rendered UI content."""
    app_id: Optional[str] = Field(default=None)
    session_id: Optional[str] = Field(default=None)
    interaction: Optional[Dict[str, Any]] = Field(default_factory=dict)


class UIContentDto(BaseDTO):
    """Content rendered by the client UI."""
    app_id: str = Field(...)
    session_id: Optional[str] = Field(default=None)
    content_type: str = Field(..., description="e.g. 'text', 'buttons', 'qrcode'.")
    content: Any = Field(default=None)
    metadata: Optional[Dict[str, Any]] = Field(default=None)
    options: Optional[Dict[str, Any]] = Field(default=None)


class QrCodeDto(BaseDTO):
    """Generated QR code image."""
    image_data_url: str = Field(..., description="PNG image as a data URL.")
