"""Static extension to remote file type table."""

from __future__ import annotations

DEFAULT_FILE_TYPE = "PLAINTEXT"

FILE_TYPES: dict[str, str] = {
    # Scripts
    "js": "JAVASCRIPT",
    "ts": "JAVASCRIPT",
    # Web files
    "html": "HTMLDOC",
    "htm": "HTMLDOC",
    "css": "STYLESHEET",
    "scss": "PLAINTEXT",
    "less": "PLAINTEXT",
    # Data files
    "xml": "XMLDOC",
    "json": "JSON",
    "txt": "PLAINTEXT",
    "csv": "CSV",
    "xls": "EXCEL",
    "xlsx": "EXCEL",
    # Documents
    "pdf": "PDF",
    "doc": "WORD",
    "docx": "WORD",
    # Images
    "png": "PNGIMAGE",
    "jpg": "JPGIMAGE",
    "jpeg": "JPGIMAGE",
    "gif": "GIFIMAGE",
    "svg": "SVGIMAGE",
    "ico": "ICON",
    "bmp": "BMPIMAGE",
    # Archives
    "zip": "ZIP",
    "gzip": "GZIP",
    "tar": "TAR",
    # Other
    "mp3": "MP3",
    "mp4": "MP4",
    "mov": "MOV",
    "ppt": "POWERPOINT",
    "pptx": "POWERPOINT",
    "ftl": "FREEMARKER",
}


def extension_of(file_name: str) -> str:
    """Lower-cased text after the last dot (the whole name if there is none)."""
    return file_name.rsplit(".", 1)[-1].lower()


def file_type_for(file_name: str) -> str:
    return FILE_TYPES.get(extension_of(file_name), DEFAULT_FILE_TYPE)
