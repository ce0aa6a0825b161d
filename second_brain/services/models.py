"""
Data models for notes storage.

Uses Pydantic for validation and serialization. Field aliases match the
camelCase JSON the web client sends and expects.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class UserProfile(BaseModel):
    """Public view of a user (never includes the password hash)"""
    id: int
    name: str
    email: str
    created_at: datetime = Field(alias="createdAt")

    class Config:
        populate_by_name = True
        from_attributes = True


class Folder(BaseModel):
    """Folder owned by a single user"""
    id: int
    author_id: int = Field(alias="authorId")
    name: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    note_count: int = Field(default=0, ge=0, alias="noteCount")

    class Config:
        populate_by_name = True


class Note(BaseModel):
    """Complete note with all fields"""
    id: int
    author_id: int = Field(alias="authorId")
    folder_id: int = Field(alias="folderId")
    title: str
    content: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    word_count: int = Field(default=0, ge=0, alias="wordCount")

    class Config:
        populate_by_name = True


class NoteUpdate(BaseModel):
    """
    Partial update for a note.

    Only fields present in the request are applied; use
    ``model_dump(exclude_unset=True, exclude_none=True)`` to get them.
    """
    title: Optional[str] = None
    content: Optional[str] = None
    folder_id: Optional[int] = Field(default=None, alias="folderId")

    class Config:
        populate_by_name = True


class ChatTurn(BaseModel):
    """One prior message in the chat panel conversation"""
    role: str
    content: str

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        # Anything that isn't the user is treated as the assistant.
        return "user" if value == "user" else "assistant"


class ChatRequest(BaseModel):
    """
    Body of POST /api/ai/chat

    A non-string context is treated as absent and malformed history entries
    are dropped; only a blank or missing message fails validation.
    """
    message: str = Field(..., min_length=1)
    context_window: Optional[str] = Field(default=None, alias="contextWindow")
    chat_history: List[ChatTurn] = Field(default_factory=list, alias="chatHistory")

    @field_validator("message")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message is blank")
        return value

    @field_validator("context_window", mode="before")
    @classmethod
    def _context_or_none(cls, value):
        return value if isinstance(value, str) else None

    @field_validator("chat_history", mode="before")
    @classmethod
    def _drop_malformed_turns(cls, value):
        if not isinstance(value, list):
            return []
        turns = []
        for item in value:
            if isinstance(item, ChatTurn):
                turns.append(item)
            elif isinstance(item, dict) and isinstance(item.get("content"), str):
                turns.append({"role": str(item.get("role", "")), "content": item["content"]})
        return turns

    class Config:
        populate_by_name = True
