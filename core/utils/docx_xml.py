"""Package access and entity helpers for the .docx main document part."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from lxml import etree

from core.utils.errors import InvalidContainerError

_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def xml_escape(value: str) -> str:
    """Escape text for insertion into XML character content."""

    escaped = value
    for char, entity in _ESCAPES:
        escaped = escaped.replace(char, entity)
    return escaped


def xml_unescape(value: str) -> str:
    """Decode the five predefined XML entities (``&amp;`` last)."""

    decoded = value
    for char, entity in reversed(_ESCAPES):
        decoded = decoded.replace(entity, char)
    return decoded


@dataclass(frozen=True)
class DocxContainer:
    """Read-only view over a .docx archive and its primary document part."""

    data: bytes
    main_part_name: str

    @classmethod
    def from_bytes(cls, data: bytes) -> DocxContainer:
        """Open a package and locate its main document part.

        The part is resolved through the package relationships, so templates whose
        body lives somewhere other than ``word/document.xml`` still load.
        """

        try:
            document = Document(io.BytesIO(data))
        except (
            PackageNotFoundError,
            zipfile.BadZipFile,
            etree.XMLSyntaxError,
            KeyError,
            ValueError,
        ) as exc:
            raise InvalidContainerError(
                "upload is not a valid .docx package",
                detail={"error": str(exc)},
            ) from exc

        part_name = str(document.part.partname).lstrip("/")
        container = cls(data=data, main_part_name=part_name)
        # Fail at open time rather than at substitution time.
        container.read_main_part()
        return container

    def read_main_part(self) -> str:
        """Return the main document part XML as text."""

        try:
            with zipfile.ZipFile(io.BytesIO(self.data)) as archive:
                raw = archive.read(self.main_part_name)
        except (zipfile.BadZipFile, KeyError) as exc:
            raise InvalidContainerError(
                "missing main document part",
                detail={"part": self.main_part_name},
            ) from exc

        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidContainerError(
                "main document part is not UTF-8",
                detail={"part": self.main_part_name},
            ) from exc

    def with_main_part(self, xml: str) -> bytes:
        """Repack the archive with a new main part; other entries are copied verbatim."""

        output = io.BytesIO()
        with zipfile.ZipFile(io.BytesIO(self.data)) as source, zipfile.ZipFile(
            output, mode="w"
        ) as target:
            for info in source.infolist():
                if info.filename == self.main_part_name:
                    payload = xml.encode("utf-8")
                else:
                    payload = source.read(info)
                target.writestr(info, payload, compress_type=info.compress_type)
        return output.getvalue()
