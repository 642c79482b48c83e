import json
import logging

from backend.database import get_db

logger = logging.getLogger(__name__)

DEFAULT_KEY = "client"


class StateStore:
    """Keeps the client's snapshot as one opaque JSON document per key."""

    async def load(self, key: str = DEFAULT_KEY) -> dict | None:
        async with get_db() as db:
            cursor = await db.execute(
                "SELECT payload FROM app_state WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
        if not row:
            return None
        try:
            return json.loads(row["payload"])
        except json.JSONDecodeError:
            logger.warning("Stored state for %s is not valid JSON; ignoring it", key)
            return None

    async def save(self, state: dict, key: str = DEFAULT_KEY):
        payload = json.dumps(state, ensure_ascii=False)
        async with get_db() as db:
            await db.execute(
                """INSERT INTO app_state (key, payload, updated_at)
                   VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET
                   payload = excluded.payload,
                   updated_at = excluded.updated_at""",
                (key, payload),
            )
            await db.commit()

    async def delete(self, key: str = DEFAULT_KEY):
        async with get_db() as db:
            await db.execute("DELETE FROM app_state WHERE key = ?", (key,))
            await db.commit()

    async def count(self) -> int:
        async with get_db() as db:
            cursor = await db.execute("SELECT COUNT(*) FROM app_state")
            row = await cursor.fetchone()
            return row[0] if row else 0
