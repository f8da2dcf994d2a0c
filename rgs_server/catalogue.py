"""Outcome books: loading, validation and uniform selection."""
import json
import random
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from pydantic import TypeAdapter, ValidationError

from .config import BOOKS_DIR, VARIANTS
from .schemas import Book


_BOOK_LIST = TypeAdapter(List[Book])


class CatalogueError(Exception):
    """The book fixtures cannot back a game server."""


class OutcomeCatalogue:
    def __init__(self, books: Iterable[Book]):
        books = tuple(books)
        if not books:
            raise CatalogueError("Outcome catalogue is empty.")
        seen = set()
        for book in books:
            if book.id in seen:
                raise CatalogueError(f"Duplicate book id {book.id}.")
            seen.add(book.id)
        self._books = books
        self._by_id = {book.id: book for book in books}

    @classmethod
    def from_records(cls, records: Sequence[dict]) -> "OutcomeCatalogue":
        try:
            books = _BOOK_LIST.validate_python(list(records))
        except ValidationError as exc:
            raise CatalogueError(f"Invalid book data: {exc}") from exc
        return cls(books)

    @classmethod
    def from_file(cls, path: Path | str) -> "OutcomeCatalogue":
        path = Path(path)
        try:
            records = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogueError(f"Cannot read books from {path}: {exc}") from exc
        if not isinstance(records, list):
            raise CatalogueError(f"{path}: expected a JSON list of books.")
        return cls.from_records(records)

    @classmethod
    def for_variant(cls, variant: str) -> "OutcomeCatalogue":
        if variant not in VARIANTS:
            raise CatalogueError(f"Unknown game variant {variant!r}.")
        return cls.from_file(BOOKS_DIR / VARIANTS[variant]["books"])

    def __len__(self) -> int:
        return len(self._books)

    def __iter__(self) -> Iterator[Book]:
        return iter(self._books)

    @property
    def books(self) -> tuple:
        return self._books

    def get(self, book_id: int) -> Book:
        try:
            return self._by_id[book_id]
        except KeyError:
            raise CatalogueError(f"Book {book_id} not found.") from None

    def bonus_books(self) -> List[Book]:
        return [book for book in self._books if book.is_bonus]


def pick_random_book(catalogue: OutcomeCatalogue, rng: random.Random | None = None) -> Book:
    """Uniform pick, independent of every previous pick."""
    return (rng or random).choice(catalogue.books)
