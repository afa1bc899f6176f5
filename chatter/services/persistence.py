"""Persistence collaborator handed to the realtime gateway.

Thin object facade over the ``user_service`` / ``group_service`` /
``message_service`` functions bound to one connection, so the gateway can be
constructed with a fake in tests. Store failures are logged and re-raised as
``PersistenceError``.
"""

from __future__ import annotations

import functools
import logging

import aiosqlite

from chatter.exceptions import PersistenceError
from chatter.services import group_service, message_service, user_service

logger = logging.getLogger(__name__)


def _store_call(func):
    """Translate ``aiosqlite.Error`` raised by *func* into ``PersistenceError``."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except aiosqlite.Error as exc:
            logger.error("Persistence call %s failed: %s", func.__name__, exc, exc_info=True)
            raise PersistenceError() from exc

    return wrapper


class PersistenceGateway:
    """Durable reads/writes used by the realtime layer."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @_store_call
    async def find_user_by_id(self, user_id: int) -> dict | None:
        return await user_service.find_user_by_id(self._db, user_id)

    @_store_call
    async def find_group_by_id(self, group_id: int) -> dict | None:
        return await group_service.find_group_by_id(self._db, group_id)

    @_store_call
    async def is_group_member(self, group_id: int, user_id: int) -> bool:
        return await group_service.is_member(self._db, group_id, user_id)

    @_store_call
    async def create_message(
        self,
        content: str,
        sender_id: int,
        *,
        recipient_id: int | None = None,
        group_id: int | None = None,
    ) -> dict:
        return await message_service.create_message(
            self._db,
            content=content,
            sender_id=sender_id,
            recipient_id=recipient_id,
            group_id=group_id,
        )

    @_store_call
    async def find_message_with_details(self, message_id: int) -> dict | None:
        return await message_service.find_message_with_details(self._db, message_id)
