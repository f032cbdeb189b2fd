"""Pydantic request models for API endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from revisionist.models import MAX_MESSAGE_LENGTH


class MessageBody(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class LLMConnection(BaseModel):
    provider_url: str | None = None
    api_key: str | None = None
    provider_format: Literal["openai", "koboldcpp"] | None = None
    model: str | None = None
    temperature: float | None = None
    timeout: float | None = None


class UpdateSettings(BaseModel):
    llm_connection: LLMConnection | None = None
    objective_source: Literal["fixed", "ai"] | None = None
    rate_limit_seconds: float | None = Field(default=None, ge=0)
    # read when the app starts
    max_sessions: int | None = Field(default=None, ge=1)
    session_idle_minutes: float | None = Field(default=None, gt=0)
