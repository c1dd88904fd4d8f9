"""Catalog reads filtered through the entitlement rules."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Protocol, Sequence

from ..entitlements.models import AccessInfo, UserRole, can_play_chapter
from ..gates import require_playback
from .models import Audiobook, Chapter, ContentStatus, Visibility

if TYPE_CHECKING:  # pragma: no cover
    from ..entitlements.service import EntitlementService


class CatalogRepository(Protocol):
    """Persistence operations required by the catalog service."""

    def list_public_audiobooks(
        self,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Audiobook]:
        ...

    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        ...

    def list_chapters(self, audiobook_id: str) -> Sequence[Chapter]:
        ...

    def get_chapter(self, chapter_id: str) -> Optional[Chapter]:
        ...


@dataclass(frozen=True)
class AudiobookDetail:
    audiobook: Audiobook
    chapters: List[Chapter]
    access: AccessInfo


def _can_manage(viewer: Optional[Any], audiobook: Audiobook) -> bool:
    if viewer is None:
        return False
    return str(viewer.id) == audiobook.publisher_id or getattr(viewer, "role", None) == UserRole.ADMIN


def _is_viewable(viewer: Optional[Any], audiobook: Audiobook) -> bool:
    if _can_manage(viewer, audiobook):
        return True
    return audiobook.status == ContentStatus.APPROVED and audiobook.visibility in {
        Visibility.PUBLIC,
        Visibility.UNLISTED,
    }


def _redact(chapter: Chapter, access: AccessInfo) -> Chapter:
    if can_play_chapter(chapter, access):
        return chapter
    return chapter.model_copy(update={"audio_url": None})


class CatalogService:
    """Serves audiobook listings and entitlement-aware details."""

    def __init__(self, repository: CatalogRepository, entitlements: EntitlementService) -> None:
        self._repository = repository
        self._entitlements = entitlements

    def list_audiobooks(
        self,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Audiobook]:
        return list(
            self._repository.list_public_audiobooks(
                category=category, search=search, limit=limit, offset=offset
            )
        )

    def get_audiobook(self, viewer: Optional[Any], audiobook_id: str) -> Audiobook:
        audiobook = self._repository.get_audiobook(audiobook_id)
        if audiobook is None or not _is_viewable(viewer, audiobook):
            raise LookupError("Audiobook not found")
        return audiobook

    def get_audiobook_detail(self, viewer: Optional[Any], audiobook_id: str) -> AudiobookDetail:
        audiobook = self.get_audiobook(viewer, audiobook_id)
        access = self._entitlements.check_access(viewer, audiobook)
        manager = _can_manage(viewer, audiobook)
        chapters = [
            _redact(chapter, access)
            for chapter in self._repository.list_chapters(audiobook.id)
            if manager or chapter.status == ContentStatus.APPROVED
        ]
        return AudiobookDetail(audiobook=audiobook, chapters=chapters, access=access)

    def get_chapter(self, viewer: Optional[Any], chapter_id: str) -> Chapter:
        """Return a playable chapter or raise ``AccessError`` when locked."""

        chapter = self._repository.get_chapter(chapter_id)
        if chapter is None:
            raise LookupError("Chapter not found")
        audiobook = self.get_audiobook(viewer, chapter.audiobook_id)
        if chapter.status != ContentStatus.APPROVED and not _can_manage(viewer, audiobook):
            raise LookupError("Chapter not found")

        require_playback(chapter, self._entitlements.check_access(viewer, audiobook))
        return chapter


__all__ = ["AudiobookDetail", "CatalogRepository", "CatalogService"]
