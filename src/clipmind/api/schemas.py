"""Pydantic schemas for API request/response validation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class UsageOut(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class SourceOut(BaseModel):
    id: int
    url: str
    name: str
    type: str


# ------------------------------------------------------------------
# Chat
# ------------------------------------------------------------------


class ChatRequest(BaseModel):
    message: str | None = Field(None, description="The user's question")
    thread_id: int | None = Field(None, description="Existing thread; omit to start one")
    model: Literal["openai", "gemini"] | None = Field(None, description="Answer provider")
    tag_id: int | None = Field(None, description="Restrict retrieval to one tag")


class ChatResponse(BaseModel):
    thread_id: int
    answer: str
    sources: list[SourceOut]
    usage: UsageOut
    cost: str


class ThreadOut(BaseModel):
    id: int
    title: str
    updated_at: str | None = None


class MessageOut(BaseModel):
    role: str
    content: str
    sources: list[SourceOut] | None = None
    created_at: str | None = None


class MessageResponse(BaseModel):
    message: str


# ------------------------------------------------------------------
# Library
# ------------------------------------------------------------------


class SaveTranscriptRequest(BaseModel):
    url: str | None = None
    transcript: str | None = None
    summary: str | None = None
    tag_id: int | None = None
    cost: str | None = None


class SavedResponse(BaseModel):
    id: int
    message: str


class TranscriptOut(BaseModel):
    id: int
    url: str
    transcript: str
    summary: str
    tag_id: int | None = None
    cost: str | None = None
    indexed: bool
    created_at: str | None = None


class TagAssignment(BaseModel):
    tag_id: int | None = None


class DocumentRequest(BaseModel):
    name: str | None = None
    filename: str | None = None
    mime_type: str = "text/plain"
    content: str | None = None
    tag_id: int | None = None


class DocumentOut(BaseModel):
    id: int
    name: str
    filename: str
    type: str
    tag_id: int | None = None
    indexed: bool
    created_at: str | None = None


class TagRequest(BaseModel):
    name: str | None = None


class TagOut(BaseModel):
    id: int
    name: str
    created_at: str | None = None


class SuccessResponse(BaseModel):
    success: bool = True


# ------------------------------------------------------------------
# Transcription
# ------------------------------------------------------------------


class TranscribeRequest(BaseModel):
    url: str | None = None
    model: Literal["openai", "gemini"] | None = None
    long: bool = Field(False, description="Split long recordings into segments")


class TranscribeResponse(BaseModel):
    transcript: str
    summary: str
    usage: UsageOut
    cost: str
