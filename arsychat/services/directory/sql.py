from datetime import datetime, timezone
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import sessionmaker

from arsychat.models import BotUser
from arsychat.services.directory.base import UserDirectory

COLUMNS = ("id", "first_name", "last_seen", "current_model")


class SqlUserDirectory(UserDirectory):
    """User records in the ``bot_users`` table.

    Sessions are synchronous; each call runs in the threadpool so the event
    loop keeps serving other updates while the database answers.
    """

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self.session_factory = session_factory

    async def _get(self, user_id: str) -> Optional[dict]:
        return await run_in_threadpool(self._get_sync, user_id)

    async def _patch(self, user_id: str, fields: dict) -> None:
        await run_in_threadpool(self._patch_sync, user_id, fields)

    async def _list(self) -> list[str]:
        return await run_in_threadpool(self._list_sync)

    def _get_sync(self, user_id: str) -> Optional[dict]:
        db = self.session_factory()
        try:
            user = db.get(BotUser, user_id)
            if user is None:
                return None
            return {column: getattr(user, column) for column in COLUMNS if getattr(user, column) is not None}
        finally:
            db.close()

    def _patch_sync(self, user_id: str, fields: dict) -> None:
        db = self.session_factory()
        try:
            user = db.get(BotUser, user_id)
            if user is None:
                user = BotUser(id=user_id, first_name="", created_at=datetime.now(timezone.utc))
                db.add(user)
            for column, value in fields.items():
                if column in COLUMNS and column != "id":
                    setattr(user, column, value)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _list_sync(self) -> list[str]:
        db = self.session_factory()
        try:
            return [row.id for row in db.query(BotUser.id).order_by(BotUser.created_at).all()]
        finally:
            db.close()
