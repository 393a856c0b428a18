"""
shadowapi/data/db.py
SQLite-backed key/blob storage for persisted sessions.

One row per session key. The whole finding set is written as a single blob,
so a write either replaces the session completely or not at all.

The connection is bound to the event loop that called init(); every
coroutine here must run on that same loop (the SessionWriter's loop).
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Union

import aiosqlite

logger = logging.getLogger(__name__)


class SessionDatabase:
    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self._initialized = False
        self._db_connection: Optional[aiosqlite.Connection] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def init(self) -> None:
        if self._initialized:
            return

        self._loop = asyncio.get_running_loop()
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            self._db_connection = await aiosqlite.connect(self.db_path, timeout=5.0)
            await self._db_connection.execute("PRAGMA journal_mode=WAL;")
            await self._db_connection.execute("PRAGMA synchronous=NORMAL;")
            await self._db_connection.execute("PRAGMA busy_timeout=5000;")
            await self._db_connection.execute("""
                CREATE TABLE IF NOT EXISTS session_blobs (
                    key TEXT PRIMARY KEY,
                    blob TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await self._db_connection.commit()
            self._initialized = True
            logger.info(f"[SessionDatabase] Initialized at {self.db_path} (WAL mode)")
        except Exception as e:
            logger.error(f"[SessionDatabase] Init failed: {e}")
            raise

    def _check_loop(self) -> None:
        current = asyncio.get_running_loop()
        if self._loop is not None and current is not self._loop:
            raise RuntimeError(
                "SessionDatabase used from a different event loop than the one it was initialized on"
            )

    async def save_blob(self, key: str, blob: str) -> None:
        await self.init()
        self._check_loop()
        await self._db_connection.execute(
            """
            INSERT INTO session_blobs (key, blob, updated_at)
            VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET blob = excluded.blob, updated_at = excluded.updated_at
            """,
            (key, blob),
        )
        await self._db_connection.commit()

    async def load_blob(self, key: str) -> Optional[str]:
        await self.init()
        self._check_loop()
        async with self._db_connection.execute(
            "SELECT blob FROM session_blobs WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def close(self) -> None:
        if self._db_connection is not None:
            try:
                await self._db_connection.close()
                logger.info("[SessionDatabase] Connection closed.")
            except Exception as e:
                logger.error(f"[SessionDatabase] Error closing connection: {e}")
            finally:
                self._db_connection = None
                self._initialized = False
