"""Read-side persistence for the audiobook catalog."""
from __future__ import annotations

from typing import List, Optional

from ..db import PostgresRepository
from .models import Audiobook, Chapter, ContentStatus, Visibility

_AUDIOBOOK_COLUMNS = """
    id::text AS id, title, author, narrator, description, cover_art_url, category,
    language, price_cents, currency, is_free, status, visibility,
    publisher_id::text AS publisher_id, published_at, created_at, updated_at
"""

_CHAPTER_COLUMNS = """
    id::text AS id, audiobook_id::text AS audiobook_id, title, chapter_number,
    audio_url, duration_seconds, is_sample, status, visibility
"""


def row_to_audiobook(row: dict) -> Audiobook:
    return Audiobook(
        id=str(row["id"]),
        title=row["title"],
        author=row["author"],
        narrator=row.get("narrator"),
        description=row.get("description") or "",
        cover_art_url=row.get("cover_art_url"),
        category=row.get("category") or "General",
        language=row.get("language") or "es",
        price_cents=int(row["price_cents"]),
        currency=(row.get("currency") or "EUR").strip(),
        is_free=bool(row.get("is_free")),
        status=ContentStatus(row["status"]),
        visibility=Visibility(row["visibility"]),
        publisher_id=str(row["publisher_id"]),
        published_at=row.get("published_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def row_to_chapter(row: dict) -> Chapter:
    return Chapter(
        id=str(row["id"]),
        audiobook_id=str(row["audiobook_id"]),
        title=row["title"],
        chapter_number=int(row["chapter_number"]),
        audio_url=row.get("audio_url"),
        duration_seconds=int(row.get("duration_seconds") or 0),
        is_sample=bool(row.get("is_sample")),
        status=ContentStatus(row["status"]),
        visibility=Visibility(row["visibility"]),
    )


class PostgresCatalogRepository(PostgresRepository):
    """Concrete repository reading catalog rows from PostgreSQL."""

    def list_public_audiobooks(
        self,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Audiobook]:
        clauses = ["status = 'APPROVED'", "visibility = 'PUBLIC'"]
        params: list = []
        if category:
            clauses.append("LOWER(category) = LOWER(%s)")
            params.append(category)
        if search:
            clauses.append("(title ILIKE %s OR author ILIKE %s OR narrator ILIKE %s)")
            pattern = f"%{search}%"
            params.extend([pattern, pattern, pattern])
        params.extend([limit, offset])

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_AUDIOBOOK_COLUMNS}
                FROM audiobooks
                WHERE {" AND ".join(clauses)}
                ORDER BY published_at DESC NULLS LAST, created_at DESC
                LIMIT %s OFFSET %s
                """,
                params,
            )
            rows = cursor.fetchall()
        return [row_to_audiobook(row) for row in rows]

    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_AUDIOBOOK_COLUMNS} FROM audiobooks WHERE id::text = %s",
                (audiobook_id,),
            )
            row = cursor.fetchone()
        return row_to_audiobook(row) if row else None

    def list_chapters(self, audiobook_id: str) -> List[Chapter]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_CHAPTER_COLUMNS}
                FROM chapters
                WHERE audiobook_id::text = %s
                ORDER BY chapter_number ASC
                """,
                (audiobook_id,),
            )
            rows = cursor.fetchall()
        return [row_to_chapter(row) for row in rows]

    def get_chapter(self, chapter_id: str) -> Optional[Chapter]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_CHAPTER_COLUMNS} FROM chapters WHERE id::text = %s",
                (chapter_id,),
            )
            row = cursor.fetchone()
        return row_to_chapter(row) if row else None


__all__ = ["PostgresCatalogRepository", "row_to_audiobook", "row_to_chapter"]
