"""Binary/text classification, encoding detection, and content hashing."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from pathlib import PurePosixPath

SAMPLE_BYTES = 8192
NON_PRINTABLE_RATIO_LIMIT = 0.3

BINARY_EXTENSIONS = frozenset(
    {
        ".exe", ".dll", ".so", ".dylib", ".app",
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".ico", ".svg", ".webp",
        ".mp3", ".wav", ".mp4", ".avi", ".mov", ".mkv", ".flv",
        ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".bin", ".dat", ".db", ".sqlite", ".mdb",
        ".ttf", ".otf", ".woff", ".woff2",
        ".class", ".jar", ".pyc", ".o", ".obj",
    }
)

TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".md", ".json", ".xml", ".html", ".htm", ".css", ".js", ".ts",
        ".py", ".java", ".c", ".cpp", ".h", ".hpp", ".cs", ".php", ".rb",
        ".go", ".rs", ".swift", ".kt", ".scala", ".sh", ".bat", ".ps1",
        ".yaml", ".yml", ".toml", ".ini", ".cfg", ".conf", ".log",
        ".sql", ".r", ".m", ".pl", ".lua", ".vim", ".dockerfile",
    }
)

BINARY_SIGNATURES: tuple[bytes, ...] = (
    b"\x89PNG",
    b"\xff\xd8\xff",  # JPEG
    b"GIF8",
    b"%PDF",
    b"PK\x03\x04",  # ZIP
    b"PK\x05\x06",  # ZIP (empty)
    b"PK\x07\x08",  # ZIP (spanned)
    b"Rar!",
    b"\x7fELF",
    b"MZ",  # PE
    b"\xca\xfe\xba\xbe",  # Java class
)

BINARY_CATEGORIES = {
    ".jpg": "image",
    ".jpeg": "image",
    ".png": "image",
    ".gif": "image",
    ".bmp": "image",
    ".mp3": "audio",
    ".wav": "audio",
    ".mp4": "video",
    ".avi": "video",
    ".zip": "archive",
    ".rar": "archive",
    ".7z": "archive",
    ".tar": "archive",
    ".pdf": "document",
    ".doc": "document",
    ".docx": "document",
    ".exe": "executable",
    ".dll": "executable",
    ".so": "executable",
}

_BOMS: tuple[tuple[bytes, str, str], ...] = (
    (b"\xef\xbb\xbf", "utf-8", "utf-8-sig"),
    (b"\xff\xfe", "utf-16-le", "utf-16-le"),
    (b"\xfe\xff", "utf-16-be", "utf-16-be"),
)


@dataclass(slots=True, frozen=True)
class Classification:
    """Classification outcome for one file's bytes."""

    is_binary: bool
    encoding: str | None
    content: str | None
    hash: str
    size: int


def sha256_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def _suffix(path: str) -> str:
    return PurePosixPath(path).suffix.lower()


def has_binary_signature(data: bytes) -> bool:
    """Return True when the data starts with a known binary magic number."""
    if len(data) < 4:
        return False
    return any(data.startswith(signature) for signature in BINARY_SIGNATURES)


def _non_printable_ratio(sample: bytes) -> float:
    if not sample:
        return 0.0
    count = sum(1 for byte in sample if byte < 9 or 13 < byte < 32 or byte == 127)
    return count / len(sample)


def _is_valid_utf8(data: bytes) -> bool:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def is_binary(data: bytes, path: str = "") -> bool:
    """Decide binary vs text from extension tables and content heuristics."""
    suffix = _suffix(path)
    if suffix in BINARY_EXTENSIONS:
        return True
    if suffix in TEXT_EXTENSIONS:
        return False
    if has_binary_signature(data):
        return True
    sample = data[:SAMPLE_BYTES]
    if b"\x00" in sample:
        return True
    if _non_printable_ratio(sample) > NON_PRINTABLE_RATIO_LIMIT:
        return True
    return not _is_valid_utf8(data)


def detect_encoding(data: bytes) -> str | None:
    """Detect the text encoding from BOM markers, UTF-8 validity, then ASCII."""
    for bom, encoding, _ in _BOMS:
        if data.startswith(bom):
            return encoding
    if _is_valid_utf8(data):
        return "utf-8"
    if data.isascii():
        return "ascii"
    return None


def decode_text(data: bytes, encoding: str | None) -> str:
    """Decode bytes with a detected encoding, stripping any BOM.

    Raises ``UnicodeDecodeError`` when the bytes are not valid in the encoding.
    """
    for bom, name, codec in _BOMS:
        if encoding == name and data.startswith(bom):
            if codec == "utf-8-sig":
                return data.decode(codec)
            return data[len(bom) :].decode(codec)
    return data.decode(encoding or "utf-8")


def classify(data: bytes, path: str = "") -> Classification:
    """Classify bytes as binary or text and decode text content.

    The hash always covers the raw bytes; binary files are never decoded.
    """
    digest = sha256_bytes(data)
    if is_binary(data, path):
        return Classification(
            is_binary=True, encoding=None, content=None, hash=digest, size=len(data)
        )
    encoding = detect_encoding(data) or "utf-8"
    content = decode_text(data, encoding)
    return Classification(
        is_binary=False, encoding=encoding, content=content, hash=digest, size=len(data)
    )


def binary_category(path: str) -> str:
    """Return a coarse category name for a binary file."""
    return BINARY_CATEGORIES.get(_suffix(path), "binary")


def binary_placeholder(path: str, size: int) -> str:
    """Return the descriptive stand-in for a binary file's content."""
    return f"[BINARY FILE: {size} bytes, type: {binary_category(path)}]"


def binary_payload(data: bytes) -> str:
    """Return the base64-wrapped marker for a binary file's content."""
    return f"[BINARY:{base64.b64encode(data).decode('ascii')}]"
