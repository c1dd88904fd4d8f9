"""API schemas for public catalog endpoints."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict

from ..admin import ExternalService
from ..catalog import Audiobook, AudiobookDetail, Chapter
from ..entitlements import AccessInfo


class AudiobookListResponse(BaseModel):
    audiobooks: List[Audiobook]

    model_config = ConfigDict(populate_by_name=True)


class AudiobookDetailResponse(BaseModel):
    audiobook: Audiobook
    chapters: List[Chapter]
    access: AccessInfo

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_detail(cls, detail: AudiobookDetail) -> "AudiobookDetailResponse":
        return cls(audiobook=detail.audiobook, chapters=list(detail.chapters), access=detail.access)


class ExternalServiceListResponse(BaseModel):
    services: List[ExternalService]

    model_config = ConfigDict(populate_by_name=True)


__all__ = ["AudiobookDetailResponse", "AudiobookListResponse", "ExternalServiceListResponse"]
