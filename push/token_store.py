"""SQLite store of registered device push tokens."""

import sqlite3
import logging
from pathlib import Path
from typing import Callable, List

from schemas.responses import PushTokenData
from utils.clock import now_ms

logger = logging.getLogger(__name__)


class PushTokenStore:
    """Upsert-by-token persistence for device push tokens."""

    def __init__(
        self,
        db_path: str = "data/cupid.db",
        clock: Callable[[], int] = now_ms
    ):
        """
        Initialize push token store.

        Args:
            db_path: Path to SQLite database file
            clock: Millisecond clock for registration timestamps
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS push_tokens (
                token TEXT PRIMARY KEY,
                device_id TEXT,
                device_name TEXT,
                platform TEXT NOT NULL,
                timestamp INTEGER NOT NULL
            )
        """)
        conn.commit()
        conn.close()

    def upsert(self, token_data: PushTokenData) -> PushTokenData:
        """
        Add or update a push token.

        Args:
            token_data: Token and device details

        Returns:
            The stored token data with its registration timestamp
        """
        if not token_data.token:
            raise ValueError("Token is required")

        stored = token_data.model_copy(update={"timestamp": self.clock()})

        conn = self._get_connection()
        existing = conn.execute(
            "SELECT 1 FROM push_tokens WHERE token = ?", (stored.token,)
        ).fetchone()
        conn.execute(
            """
            INSERT OR REPLACE INTO push_tokens (token, device_id, device_name, platform, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (stored.token, stored.device_id, stored.device_name, stored.platform, stored.timestamp)
        )
        conn.commit()
        conn.close()

        if existing:
            logger.info(f"Updated existing token: {stored.token[:20]}...")
        else:
            logger.info(f"Added new token: {stored.token[:20]}...")
        return stored

    def list_tokens(self) -> List[PushTokenData]:
        """All registered tokens, oldest registration first."""
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT token, device_id, device_name, platform, timestamp "
            "FROM push_tokens ORDER BY timestamp, token"
        ).fetchall()
        conn.close()

        return [
            PushTokenData(
                token=row["token"],
                device_id=row["device_id"],
                device_name=row["device_name"],
                platform=row["platform"],
                timestamp=row["timestamp"]
            )
            for row in rows
        ]

    def all_tokens(self) -> List[str]:
        """Token strings of every registered device."""
        return [t.token for t in self.list_tokens()]

    def count(self) -> int:
        """Number of registered tokens."""
        conn = self._get_connection()
        result = conn.execute("SELECT COUNT(*) FROM push_tokens").fetchone()
        conn.close()
        return result[0] if result else 0
