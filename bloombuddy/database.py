"""
SQLite Database Layer
=====================
Persistent storage for analyzed documents, the analysis history and the
instructor's question bank.
No in-memory caching — always reads from disk.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .models import AnalyzedQuestion, utc_now_iso

logger = logging.getLogger(__name__)

# Default database path: project_root/database.sqlite
_DEFAULT_DB_PATH = str(Path(__file__).parent.parent / "database.sqlite")

LATEST_HISTORY_LIMIT = 20


def get_db_path() -> str:
    """Return the configured database path."""
    return os.environ.get("BLOOMBUDDY_DB_PATH", _DEFAULT_DB_PATH)


@contextmanager
def get_connection(db_path: str = None):
    """
    Context manager for database connections.
    Ensures proper commit/rollback and connection cleanup.
    """
    db_path = db_path or get_db_path()
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str = None):
    """
    Initialize the database schema.
    Safe to call multiple times — uses IF NOT EXISTS.
    """
    db_path = db_path or get_db_path()
    logger.info(f"Initializing database at: {db_path}")

    with get_connection(db_path) as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                file_type TEXT DEFAULT '',
                file_path TEXT DEFAULT '',
                file_hash TEXT DEFAULT '',
                total_pages INTEGER DEFAULT 0,
                total_questions INTEGER DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS analyzed_questions (
                id TEXT PRIMARY KEY,
                text TEXT NOT NULL,
                bloom_level TEXT NOT NULL,
                confidence REAL,
                created_at TEXT NOT NULL,
                document_name TEXT,
                page_number INTEGER,
                generated INTEGER DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS questions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                text TEXT NOT NULL,
                bloom_level TEXT NOT NULL,
                marks INTEGER,
                keywords TEXT DEFAULT '[]',
                image_url TEXT,
                document_id INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE SET NULL
            );

            CREATE INDEX IF NOT EXISTS idx_analyzed_bloom_level
                ON analyzed_questions(bloom_level);
            CREATE INDEX IF NOT EXISTS idx_analyzed_created_at
                ON analyzed_questions(created_at);
            CREATE INDEX IF NOT EXISTS idx_analyzed_document_name
                ON analyzed_questions(document_name);
            CREATE INDEX IF NOT EXISTS idx_questions_bloom_level
                ON questions(bloom_level);
        """)

    logger.info("Database schema initialized successfully")


# ─── Document CRUD ────────────────────────────────────────────────────────────


def insert_document(
    title: str,
    file_type: str = "",
    file_path: str = "",
    file_hash: str = "",
    total_pages: int = 0,
    total_questions: int = 0,
    db_path: str = None,
) -> int:
    """Insert a new document record. Returns the document id."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            """INSERT INTO documents
               (title, file_type, file_path, file_hash, total_pages,
                total_questions, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (title, file_type, file_path, file_hash, total_pages,
             total_questions, utc_now_iso()),
        )
        document_id = cursor.lastrowid
        logger.info(f"Inserted document id={document_id} title={title!r}")
        return document_id


def get_document(document_id: int, db_path: str = None) -> Optional[dict]:
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return dict(row) if row else None


def list_documents(db_path: str = None) -> list[dict]:
    """List all documents, newest first."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM documents ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [dict(r) for r in rows]


def delete_document(document_id: int, db_path: str = None) -> bool:
    """Delete a document record. Returns True if row existed."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cursor.rowcount > 0


# ─── Analyzed Question History ────────────────────────────────────────────────


def store_analyzed_questions(
    questions: list[AnalyzedQuestion],
    db_path: str = None,
) -> int:
    """Store analyzed questions in one transaction. Returns rows written."""
    rows = [
        (
            q.id,
            q.text,
            q.bloom_level.value,
            q.confidence,
            q.created_at,
            q.document_name,
            q.page_number,
            int(q.generated),
        )
        for q in questions
    ]
    with get_connection(db_path) as conn:
        conn.executemany(
            """INSERT INTO analyzed_questions
               (id, text, bloom_level, confidence, created_at,
                document_name, page_number, generated)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            rows,
        )
    logger.info(f"Stored {len(rows)} analyzed question(s)")
    return len(rows)


def get_all_analyzed_questions(db_path: str = None) -> list[AnalyzedQuestion]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM analyzed_questions ORDER BY created_at DESC"
        ).fetchall()
        return [_row_to_question(r) for r in rows]


def get_analyzed_questions_by_level(
    bloom_level: str,
    db_path: str = None,
) -> list[AnalyzedQuestion]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            """SELECT * FROM analyzed_questions WHERE bloom_level = ?
               ORDER BY created_at DESC""",
            (bloom_level,),
        ).fetchall()
        return [_row_to_question(r) for r in rows]


def get_analyzed_questions_filtered(
    history_filter: str = "all",
    db_path: str = None,
) -> list[AnalyzedQuestion]:
    """
    History view used by the web client.

    ``all`` returns everything, ``latest`` the most recent
    LATEST_HISTORY_LIMIT questions, anything else is a document name.
    """
    if history_filter == "all":
        return get_all_analyzed_questions(db_path)

    with get_connection(db_path) as conn:
        if history_filter == "latest":
            rows = conn.execute(
                """SELECT * FROM analyzed_questions
                   ORDER BY created_at DESC LIMIT ?""",
                (LATEST_HISTORY_LIMIT,),
            ).fetchall()
        else:
            rows = conn.execute(
                """SELECT * FROM analyzed_questions WHERE document_name = ?
                   ORDER BY created_at DESC""",
                (history_filter,),
            ).fetchall()
        return [_row_to_question(r) for r in rows]


# ─── Question Bank CRUD ───────────────────────────────────────────────────────


def insert_bank_question(
    text: str,
    bloom_level: str,
    marks: Optional[int] = None,
    keywords: Optional[list[str]] = None,
    image_url: Optional[str] = None,
    document_id: Optional[int] = None,
    db_path: str = None,
) -> int:
    """Insert a question bank entry. Returns question id."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            """INSERT INTO questions
               (text, bloom_level, marks, keywords, image_url, document_id,
                created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (text, bloom_level, marks, json.dumps(keywords or []), image_url,
             document_id, utc_now_iso()),
        )
        return cursor.lastrowid


def get_bank_question(question_id: int, db_path: str = None) -> Optional[dict]:
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM questions WHERE id = ?", (question_id,)
        ).fetchone()
        return _bank_row(row) if row else None


def list_bank_questions(
    bloom_level: Optional[str] = None,
    db_path: str = None,
) -> list[dict]:
    """List question bank entries, newest first, optionally for one level."""
    with get_connection(db_path) as conn:
        if bloom_level:
            rows = conn.execute(
                """SELECT * FROM questions WHERE bloom_level = ?
                   ORDER BY created_at DESC, id DESC""",
                (bloom_level,),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM questions ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [_bank_row(r) for r in rows]


def update_bank_question(question_id: int, db_path: str = None, **fields) -> bool:
    """Update question bank fields. Returns True if found."""
    allowed = {"text", "bloom_level", "marks", "keywords", "image_url"}
    fields = {k: v for k, v in fields.items() if k in allowed}
    if not fields:
        return False
    if "keywords" in fields:
        fields["keywords"] = json.dumps(fields["keywords"] or [])
    fields["updated_at"] = utc_now_iso()

    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [question_id]

    with get_connection(db_path) as conn:
        cursor = conn.execute(
            f"UPDATE questions SET {set_clause} WHERE id = ?", values
        )
        return cursor.rowcount > 0


def delete_bank_question(question_id: int, db_path: str = None) -> bool:
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM questions WHERE id = ?", (question_id,))
        return cursor.rowcount > 0


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _row_to_question(row: sqlite3.Row) -> AnalyzedQuestion:
    return AnalyzedQuestion(
        id=row["id"],
        text=row["text"],
        bloom_level=row["bloom_level"],
        confidence=row["confidence"],
        created_at=row["created_at"],
        document_name=row["document_name"],
        page_number=row["page_number"],
        generated=bool(row["generated"]),
    )


def _bank_row(row: sqlite3.Row) -> dict:
    data = dict(row)
    try:
        data["keywords"] = json.loads(data.get("keywords") or "[]")
    except json.JSONDecodeError:
        logger.warning(f"Invalid keywords JSON for question {data.get('id')}")
        data["keywords"] = []
    return data
