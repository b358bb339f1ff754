"""EPUB container writer built on EbookLib, plus all-or-nothing file export."""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import BinaryIO, Protocol

from ebooklib import epub

from newsletter_archiver.core.exceptions import ExportError
from newsletter_archiver.core.models import ArchiveDocument

logger = logging.getLogger(__name__)


class ArchiveWriter(Protocol):
    """Serializes a finalized ArchiveDocument to a binary stream."""

    def write(self, document: ArchiveDocument, stream: BinaryIO) -> None: ...


class EpubArchiveWriter:
    """Write an ArchiveDocument as an EPUB 3 book.

    Each section becomes one XHTML file linking its stylesheet. The table of
    contents and the spine follow section order. The book identifier is a
    uuid5 of the title, so the same document always gets the same identifier.
    """

    def write(self, document: ArchiveDocument, stream: BinaryIO) -> None:
        """Serialize ``document`` into ``stream``.

        Raises:
            ExportError: If EbookLib fails to build or write the container.
        """
        book = self._build_book(document)
        try:
            writer = epub.EpubWriter(stream, book, {})
            writer.process()
            writer.write()
        except Exception as e:
            raise ExportError(f"Failed to write EPUB: {e}") from e
        logger.debug("Wrote EPUB with %d sections", len(document.sections))

    @staticmethod
    def _build_book(document: ArchiveDocument) -> epub.EpubBook:
        book = epub.EpubBook()
        book.set_identifier(f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, document.title)}")
        book.set_title(document.title)
        book.set_language(document.language)
        if document.author:
            book.add_author(document.author)

        for resource in document.resources:
            book.add_item(
                epub.EpubItem(
                    uid=_uid(resource.name),
                    file_name=resource.name,
                    media_type=resource.media_type,
                    content=resource.content,
                )
            )

        chapters: list[epub.EpubHtml] = []
        for index, section in enumerate(document.sections, start=1):
            chapter = epub.EpubHtml(
                uid=f"section_{index:04d}",
                title=section.title,
                file_name=f"section_{index:04d}.xhtml",
                lang=document.language,
            )
            chapter.content = section.content_html
            if section.style_ref:
                chapter.add_link(href=section.style_ref, rel="stylesheet", type="text/css")
            book.add_item(chapter)
            chapters.append(chapter)

        book.toc = chapters
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = ["nav", *chapters]
        return book


def _uid(name: str) -> str:
    stem = Path(name).stem or "resource"
    return "".join(ch if ch.isalnum() else "_" for ch in stem)


def export_to_path(writer: ArchiveWriter, document: ArchiveDocument, path: Path) -> Path:
    """Write ``document`` to ``path``, replacing any existing file.

    The container is written to a temporary file next to ``path`` and moved
    into place only once it is complete; on failure the temporary file is
    removed and ``path`` is left untouched.

    Raises:
        ExportError: If writing or moving the file fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    tmp_path = Path(tmp_name)
    completed = False
    try:
        with os.fdopen(fd, "wb") as stream:
            writer.write(document, stream)
        os.replace(tmp_path, path)
        completed = True
    except OSError as e:
        raise ExportError(f"Failed to write {path}: {e}") from e
    finally:
        if not completed:
            tmp_path.unlink(missing_ok=True)

    logger.info("Exported %r to %s", document.title, path)
    return path
