"""Pydantic schemas for the knowledge APIs."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.security.validators import sanitize_text


class ArticleInput(BaseModel):
    """Title and body submitted by the user; markup is stripped on the way in."""

    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)

    @field_validator("title", "content")
    @classmethod
    def _clean(cls, value: str) -> str:
        cleaned = sanitize_text(value)
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned


class ArticleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    user_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime


class ArticleList(BaseModel):
    items: list[ArticleOut]
    total: int


class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000)

    @field_validator("question")
    @classmethod
    def _clean(cls, value: str) -> str:
        cleaned = sanitize_text(value)
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned


class AskResponse(BaseModel):
    answer: str
    related: list[ArticleOut]
    found_count: int
    used_llm: bool


class ReindexResponse(BaseModel):
    reindexed: int
