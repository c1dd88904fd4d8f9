"""Persistence for cart entries, favorites and the purchased library."""
from __future__ import annotations

from typing import Iterable, List, Tuple

from ..catalog.models import Audiobook
from ..catalog.repository import row_to_audiobook
from ..db import PostgresRepository
from .models import CartItem, Favorite

_JOINED_AUDIOBOOK_COLUMNS = """
    a.id::text AS id, a.title, a.author, a.narrator, a.description, a.cover_art_url,
    a.category, a.language, a.price_cents, a.currency, a.is_free, a.status, a.visibility,
    a.publisher_id::text AS publisher_id, a.published_at, a.created_at, a.updated_at
"""


def _row_to_cart_item(row: dict, *, with_audiobook: bool = False) -> CartItem:
    return CartItem(
        id=str(row["entry_id"]),
        user_id=str(row["user_id"]),
        audiobook_id=str(row["audiobook_id"]),
        created_at=row["entry_created_at"],
        audiobook=row_to_audiobook(row) if with_audiobook else None,
    )


def _row_to_favorite(row: dict, *, with_audiobook: bool = False) -> Favorite:
    return Favorite(
        id=str(row["entry_id"]),
        user_id=str(row["user_id"]),
        audiobook_id=str(row["audiobook_id"]),
        created_at=row["entry_created_at"],
        audiobook=row_to_audiobook(row) if with_audiobook else None,
    )


class PostgresLibraryRepository(PostgresRepository):
    """Membership tables keyed by (user_id, audiobook_id)."""

    def _add_entry(self, table: str, user_id: str, audiobook_id: str) -> Tuple[dict, bool]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO {table} (user_id, audiobook_id)
                VALUES (%s, %s)
                ON CONFLICT (user_id, audiobook_id) DO NOTHING
                RETURNING id::text AS entry_id, user_id::text AS user_id,
                          audiobook_id::text AS audiobook_id, created_at AS entry_created_at
                """,
                (user_id, audiobook_id),
            )
            row = cursor.fetchone()
            created = row is not None
            if row is None:
                cursor.execute(
                    f"""
                    SELECT id::text AS entry_id, user_id::text AS user_id,
                           audiobook_id::text AS audiobook_id, created_at AS entry_created_at
                    FROM {table}
                    WHERE user_id::text = %s AND audiobook_id::text = %s
                    """,
                    (user_id, audiobook_id),
                )
                row = cursor.fetchone()
        return row, created

    def _remove_entry(self, table: str, user_id: str, audiobook_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                f"DELETE FROM {table} WHERE user_id::text = %s AND audiobook_id::text = %s",
                (user_id, audiobook_id),
            )
            return cursor.rowcount > 0

    def _contains(self, table: str, user_id: str, audiobook_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT 1 FROM {table} WHERE user_id::text = %s AND audiobook_id::text = %s",
                (user_id, audiobook_id),
            )
            return cursor.fetchone() is not None

    def _list_joined(self, table: str, user_id: str) -> List[dict]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT e.id::text AS entry_id, e.user_id::text AS user_id,
                       e.audiobook_id::text AS audiobook_id, e.created_at AS entry_created_at,
                       {_JOINED_AUDIOBOOK_COLUMNS}
                FROM {table} e
                JOIN audiobooks a ON a.id = e.audiobook_id
                WHERE e.user_id::text = %s
                ORDER BY e.created_at DESC
                """,
                (user_id,),
            )
            return cursor.fetchall()

    # Cart ----------------------------------------------------------------------

    def add_cart_item(self, user_id: str, audiobook_id: str) -> Tuple[CartItem, bool]:
        row, created = self._add_entry("cart_items", user_id, audiobook_id)
        return _row_to_cart_item(row), created

    def remove_cart_item(self, user_id: str, audiobook_id: str) -> bool:
        return self._remove_entry("cart_items", user_id, audiobook_id)

    def remove_many(self, user_id: str, audiobook_ids: Iterable[str]) -> int:
        ids = list(audiobook_ids)
        if not ids:
            return 0
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM cart_items WHERE user_id::text = %s AND audiobook_id::text = ANY(%s)",
                (user_id, ids),
            )
            return cursor.rowcount

    def clear_cart(self, user_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM cart_items WHERE user_id::text = %s", (user_id,))
            return cursor.rowcount

    def is_in_cart(self, user_id: str, audiobook_id: str) -> bool:
        return self._contains("cart_items", user_id, audiobook_id)

    def count_cart(self, user_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT COUNT(*) AS total FROM cart_items WHERE user_id::text = %s",
                (user_id,),
            )
            row = cursor.fetchone()
        return int(row["total"]) if row else 0

    def list_cart(self, user_id: str) -> List[CartItem]:
        return [_row_to_cart_item(row, with_audiobook=True) for row in self._list_joined("cart_items", user_id)]

    def list_cart_audiobooks(self, user_id: str) -> List[Audiobook]:
        return [item.audiobook for item in self.list_cart(user_id) if item.audiobook is not None]

    # Favorites -----------------------------------------------------------------

    def add_favorite(self, user_id: str, audiobook_id: str) -> Tuple[Favorite, bool]:
        row, created = self._add_entry("favorites", user_id, audiobook_id)
        return _row_to_favorite(row), created

    def remove_favorite(self, user_id: str, audiobook_id: str) -> bool:
        return self._remove_entry("favorites", user_id, audiobook_id)

    def is_favorite(self, user_id: str, audiobook_id: str) -> bool:
        return self._contains("favorites", user_id, audiobook_id)

    def list_favorites(self, user_id: str) -> List[Favorite]:
        return [_row_to_favorite(row, with_audiobook=True) for row in self._list_joined("favorites", user_id)]

    # Library -------------------------------------------------------------------

    def list_purchased_audiobooks(self, user_id: str) -> List[Audiobook]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT DISTINCT ON (a.id) {_JOINED_AUDIOBOOK_COLUMNS}, p.purchased_at
                FROM audiobook_purchases p
                JOIN audiobooks a ON a.id = p.audiobook_id
                WHERE p.user_id::text = %s AND p.status = 'COMPLETED'
                ORDER BY a.id, p.purchased_at DESC
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [row_to_audiobook(row) for row in rows]



__all__ = ["PostgresLibraryRepository"]
