"""
Filesystem Storage Manager
==========================
Manages persistent file storage for uploaded documents and analysis output.

Directory Layout ({data_dir} = $BLOOMBUDDY_DATA_DIR or the project root):
    {data_dir}/
    ├── uploads/documents/   # Original documents, one file per analysis
    ├── uploads/tmp/         # In-flight HTTP uploads, removed after each request
    └── output/              # Analysis JSON per document
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root: one level up from /bloombuddy/ package
_PROJECT_ROOT = Path(__file__).parent.parent.absolute()


def get_data_dir() -> Path:
    return Path(os.environ.get("BLOOMBUDDY_DATA_DIR", str(_PROJECT_ROOT)))


def documents_dir() -> Path:
    return get_data_dir() / "uploads" / "documents"


def output_dir() -> Path:
    return get_data_dir() / "output"


def temp_dir() -> Path:
    return get_data_dir() / "uploads" / "tmp"


def init_storage():
    """Ensure all required directories exist."""
    documents_dir().mkdir(parents=True, exist_ok=True)
    output_dir().mkdir(parents=True, exist_ok=True)
    temp_dir().mkdir(parents=True, exist_ok=True)
    logger.info(f"Storage initialized: {get_data_dir()}")


# ─── Document Storage ─────────────────────────────────────────────────────────


def save_document(source_path: str, filename: str) -> str:
    """
    Copy a document into uploads/documents/ under a unique name
    (``<8 hex>_<filename>``), so documents sharing a filename never
    overwrite each other. Returns the absolute path of the stored copy.
    """
    dest = documents_dir() / _unique_name(filename)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source_path, dest)
    logger.info(f"Document saved: {dest}")
    return str(dest)


def save_uploaded_file(file_obj, filename: str) -> str:
    """
    Save a Flask file upload object to uploads/tmp/ under a unique name.
    The caller owns the returned path and removes it when done.
    """
    dest = temp_dir() / _unique_name(filename)
    dest.parent.mkdir(parents=True, exist_ok=True)
    file_obj.save(str(dest))
    logger.debug(f"Upload written to temp file: {dest}")
    return str(dest)


def remove_file(path: Optional[str]) -> bool:
    """Delete one exact file if it exists. Returns True if it was removed."""
    if path and os.path.exists(path):
        os.unlink(path)
        logger.debug(f"Removed file: {path}")
        return True
    return False


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _unique_name(filename: str) -> str:
    return f"{uuid.uuid4().hex[:8]}_{sanitize_filename(filename)}"


def sanitize_filename(name: str) -> str:
    """Sanitize a filename for filesystem use, keeping the extension."""
    base = Path(name).name
    clean = "".join(
        c if c.isalnum() or c in "-_. " else "_"
        for c in base
    ).strip().replace(" ", "_")
    return clean[:120] or "document"
