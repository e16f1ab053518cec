"""In-memory PDF object table, finalized into a classic xref-table file."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Union

from .errors import FinalizeError

PDF_HEADER = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n"
DEFAULT_PRODUCER = "image-to-pdf"


class Name(str):
    """A PDF name object, serialized as ``/Value``."""


@dataclass(frozen=True, slots=True)
class Ref:
    object_id: int


PdfValue = Union[None, bool, int, float, str, Name, Ref, Sequence["PdfValue"], Mapping[str, "PdfValue"]]


def format_number(value: float) -> str:
    if isinstance(value, int):
        return str(value)
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _escape_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def serialize(value: PdfValue) -> bytes:
    if value is None:
        return b"null"
    if isinstance(value, bool):
        return b"true" if value else b"false"
    if isinstance(value, (int, float)):
        return format_number(value).encode("ascii")
    if isinstance(value, Name):
        return b"/" + value.encode("ascii")
    if isinstance(value, str):
        return b"(" + _escape_string(value).encode("latin-1", errors="replace") + b")"
    if isinstance(value, Ref):
        return f"{value.object_id} 0 R".encode("ascii")
    if isinstance(value, Mapping):
        parts = [b"/" + key.encode("ascii") + b" " + serialize(item) for key, item in value.items()]
        return b"<< " + b" ".join(parts) + b" >>"
    if isinstance(value, (list, tuple)):
        return b"[" + b" ".join(serialize(item) for item in value) + b"]"
    raise TypeError(f"Cannot serialize {type(value).__name__} into a PDF object")


class PdfDocument:
    """Growing PDF object graph.

    Object ids are handed out monotonically starting at 1 and are never
    reused. Ids 1 and 2 belong to the catalog and the page tree, which are
    written at finalize time together with the cross-reference table.
    """

    CATALOG_ID = 1
    PAGES_ID = 2

    def __init__(self, *, producer: str = DEFAULT_PRODUCER) -> None:
        self._producer = producer
        self._objects: dict[int, bytes] = {}
        self._page_ids: list[int] = []
        self._next_id = self.PAGES_ID + 1
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def page_count(self) -> int:
        return len(self._page_ids)

    @property
    def page_ids(self) -> tuple[int, ...]:
        return tuple(self._page_ids)

    @property
    def object_count(self) -> int:
        return len(self._objects)

    def _ensure_open(self) -> None:
        if self._finalized:
            raise FinalizeError("Document is already finalized and can no longer change")

    def _allocate(self) -> int:
        object_id = self._next_id
        self._next_id += 1
        return object_id

    def add_object(self, value: PdfValue) -> int:
        self._ensure_open()
        object_id = self._allocate()
        self._objects[object_id] = serialize(value)
        return object_id

    def add_stream(self, dictionary: Mapping[str, PdfValue], data: bytes) -> int:
        self._ensure_open()
        header = dict(dictionary)
        header["Length"] = len(data)
        object_id = self._allocate()
        self._objects[object_id] = serialize(header) + b"\nstream\n" + data + b"\nendstream"
        return object_id

    def add_page(self, page: Mapping[str, PdfValue]) -> int:
        """Append a page dictionary; pages keep the order in which they were added."""
        self._ensure_open()
        entries: dict[str, PdfValue] = {"Type": Name("Page"), "Parent": Ref(self.PAGES_ID)}
        entries.update(page)
        object_id = self.add_object(entries)
        self._page_ids.append(object_id)
        return object_id

    def finalize(self) -> bytes:
        self._ensure_open()
        if not self._page_ids:
            raise FinalizeError("Cannot finalize a document without pages", code="EMPTY_DOCUMENT")

        info_id = self.add_object({"Producer": self._producer})
        self._objects[self.CATALOG_ID] = serialize(
            {"Type": Name("Catalog"), "Pages": Ref(self.PAGES_ID)}
        )
        self._objects[self.PAGES_ID] = serialize(
            {
                "Type": Name("Pages"),
                "Kids": [Ref(page_id) for page_id in self._page_ids],
                "Count": len(self._page_ids),
            }
        )
        self._finalized = True

        buffer = bytearray(PDF_HEADER)
        offsets: list[int] = []
        for object_id in range(1, self._next_id):
            offsets.append(len(buffer))
            buffer += f"{object_id} 0 obj\n".encode("ascii")
            buffer += self._objects[object_id]
            buffer += b"\nendobj\n"

        size = self._next_id
        xref_offset = len(buffer)
        buffer += f"xref\n0 {size}\n".encode("ascii")
        buffer += b"0000000000 65535 f \n"
        for offset in offsets:
            buffer += f"{offset:010d} 00000 n \n".encode("ascii")
        trailer = {"Size": size, "Root": Ref(self.CATALOG_ID), "Info": Ref(info_id)}
        buffer += b"trailer\n" + serialize(trailer) + b"\n"
        buffer += f"startxref\n{xref_offset}\n%%EOF\n".encode("ascii")

        # The finished file is the only copy that survives.
        self._objects.clear()
        return bytes(buffer)


def new_document(*, producer: str = DEFAULT_PRODUCER) -> PdfDocument:
    return PdfDocument(producer=producer)


__all__ = ["Name", "PdfDocument", "Ref", "format_number", "new_document", "serialize"]
