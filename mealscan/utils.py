from __future__ import annotations

from pathlib import Path


MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_AUDIO_BYTES = 2 * 1024 * 1024

IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}

AUDIO_MIME_TYPES = {
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
}


def require_existing_file(path: str | Path) -> Path:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    if not file_path.is_file():
        raise ValueError(f"Not a file: {file_path}")
    return file_path


def _mime_type(path: Path, table: dict[str, str], kind: str) -> str:
    ext = path.suffix.lower()
    if ext not in table:
        supported = ", ".join(sorted(table))
        raise ValueError(f"Unsupported {kind} extension: {ext or '(none)'}. Supported: {supported}")
    return table[ext]


def image_mime_type(path: str | Path) -> str:
    return _mime_type(Path(path), IMAGE_MIME_TYPES, "image")


def audio_mime_type(path: str | Path) -> str:
    return _mime_type(Path(path), AUDIO_MIME_TYPES, "audio")


def format_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    if size >= 1024:
        return f"{size / 1024:.0f} KB"
    return f"{size} B"


def read_limited(path: str | Path, limit: int) -> bytes:
    file_path = require_existing_file(path)
    size = file_path.stat().st_size
    if size == 0:
        raise ValueError(f"File is empty: {file_path}")
    if size > limit:
        raise ValueError(f"File is too large ({format_size(size)}), limit is {format_size(limit)}")
    with file_path.open("rb") as handle:
        return handle.read()


def load_image(path: str | Path) -> tuple[bytes, str]:
    mime_type = image_mime_type(path)
    return read_limited(path, MAX_IMAGE_BYTES), mime_type


def load_audio(path: str | Path) -> tuple[bytes, str]:
    mime_type = audio_mime_type(path)
    return read_limited(path, MAX_AUDIO_BYTES), mime_type
