"""Filesystem implementations of the note document and the image store.

Processing flow:
    - `AttachmentStore.save_image`: ensure the attachment folder exists, derive a
      unique `<basename>-poster-<timestamp>.<ext>` file name, write the bytes.
    - `MarkdownNote.embed_image`: read the note, insert (or replace) the poster embed
      at the top of the body, write a temporary file and swap it over the note.

Embed placement:
    The `![[path]]` reference goes right after a leading `---` front-matter block,
    or at the very start of the note when there is none. A previous poster embed in
    that position is replaced, so repeated runs never stack embeds.

Error handling strategy:
    Filesystem errors are raised as `SAVE_ERROR` failures; they always need user
    intervention and are never retried automatically.
"""

import logging
import os
import re
import tempfile
import time

from knowledge_poster.core.errors import failure
from knowledge_poster.core.types import ErrorKind, ImageResult


logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9가-힣]")
_FRONT_MATTER = re.compile(r"^---\n[\s\S]*?\n---\n")
_POSTER_EMBED = re.compile(r"^!\[\[[^\]\n]*-poster-\d+\.(?:png|jpg|jpeg|webp|gif)\]\]\n\n")


def sanitize_basename(name: str) -> str:
    """Replace every character outside `[A-Za-z0-9가-힣]` with `-`."""
    return _UNSAFE_NAME_CHARS.sub("-", name) or "note"


def poster_filename(note_name: str, extension: str, timestamp_ms: int | None = None) -> str:
    """Build `<sanitized-basename>-poster-<unix-ms>.<ext>`."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{sanitize_basename(note_name)}-poster-{timestamp_ms}.{extension}"


def insert_poster_embed(content: str, image_path: str) -> str:
    """Return `content` with a poster embed for `image_path` at the top of the body.

    Edge cases:
        - Front matter is preserved verbatim and stays first.
        - An existing poster embed directly at the insertion point is replaced.
        - Embeds elsewhere in the note are left untouched.
    """
    embed = f"![[{image_path}]]\n\n"

    front_matter = ""
    match = _FRONT_MATTER.match(content)
    if match:
        front_matter = match.group(0)

    body = content[len(front_matter):]
    existing = _POSTER_EMBED.match(body)
    if existing:
        body = body[existing.end():]

    return front_matter + embed + body


class AttachmentStore:
    """Writes generated images under one attachment folder.

    Args:
        folder: Target directory; created (with parents) on first save.
    """

    def __init__(self, folder: str) -> None:
        self.folder = folder

    def _ensure_folder(self) -> None:
        if os.path.isdir(self.folder):
            return
        if os.path.exists(self.folder):
            raise failure(ErrorKind.SAVE_ERROR, f"{self.folder} exists but is not a folder")
        try:
            os.makedirs(self.folder, exist_ok=True)
        except OSError as exc:
            raise failure(
                ErrorKind.SAVE_ERROR,
                f"Failed to create attachment folder {self.folder}: {exc}",
            ) from exc

    def save_image(self, image: ImageResult, note_name: str) -> str:
        """Write `image` and return its path.

        A name collision (same note, same millisecond) bumps the timestamp until
        the name is free.
        """
        self._ensure_folder()

        timestamp_ms = int(time.time() * 1000)
        path = os.path.join(self.folder, poster_filename(note_name, image.extension, timestamp_ms))
        while os.path.exists(path):
            timestamp_ms += 1
            path = os.path.join(self.folder, poster_filename(note_name, image.extension, timestamp_ms))

        try:
            with open(path, "xb") as f:
                f.write(image.data)
        except OSError as exc:
            raise failure(ErrorKind.SAVE_ERROR, f"Failed to save image: {exc}") from exc

        logger.info("Wrote %d bytes to %s", len(image.data), path)
        return path


class MarkdownNote:
    """A markdown file on disk acting as the source document.

    Args:
        path: Note file path.
        link_base: Directory that embed links are made relative to. Defaults to the
            note's own directory.
    """

    def __init__(self, path: str, link_base: str | None = None) -> None:
        self.path = path
        self.link_base = link_base or os.path.dirname(os.path.abspath(path))
        self.name = os.path.splitext(os.path.basename(path))[0]

    def read_content(self) -> str:
        with open(self.path, "r", encoding="utf-8") as f:
            return f.read()

    def link_for(self, image_path: str) -> str:
        """Return the vault-style link for `image_path` (relative, forward slashes)."""
        if not os.path.isabs(image_path):
            return image_path.replace(os.sep, "/")
        relative = os.path.relpath(image_path, self.link_base)
        return relative.replace(os.sep, "/")

    def embed_image(self, image_path: str) -> None:
        """Insert the poster embed and atomically replace the note on disk.

        The updated text goes to a temporary file in the note's directory first, so a
        failed write leaves the original note untouched.
        """
        tmp_path = None
        try:
            content = self.read_content()
            updated = insert_poster_embed(content, self.link_for(image_path))
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=os.path.dirname(os.path.abspath(self.path)),
                prefix=".poster-",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_path = f.name
                f.write(updated)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as exc:
            raise failure(ErrorKind.SAVE_ERROR, f"Failed to embed image: {exc}") from exc
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
