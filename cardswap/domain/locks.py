"""Instance lock manager.

The lock flag on a card instance is a projection of an Active offer that
references it. Each call here is a single conditional write.
"""

from __future__ import annotations

import logging
from enum import Enum

from .exceptions import AlreadyLocked, InstanceNotFound, NotOwner, storage_errors
from ..storage.base import InstanceStore

logger = logging.getLogger(__name__)


class UnlockOutcome(str, Enum):
    RELEASED = "released"
    ALREADY_RELEASED = "already_released"
    MISMATCHED = "mismatched"
    MISSING = "missing"
    OWNER_CHANGED = "owner_changed"

    @property
    def ok(self) -> bool:
        return self in (UnlockOutcome.RELEASED, UnlockOutcome.ALREADY_RELEASED)


class InstanceLockManager:
    def __init__(self, instance_store: InstanceStore) -> None:
        self._instances = instance_store

    async def lock(self, instance_id: str, offer_id: str, *, owner_id: str | None = None) -> None:
        with storage_errors("lock"):
            acquired = await self._instances.compare_and_set_lock(
                instance_id, None, offer_id, owner_id=owner_id
            )
            if acquired:
                return
            current = await self._instances.get(instance_id)
        if current is None:
            raise InstanceNotFound(f"Instance {instance_id} not found")
        if current.locked_by == offer_id and (owner_id is None or current.owner_id == owner_id):
            # Already ours, e.g. a retried request.
            return
        if current.is_locked:
            raise AlreadyLocked(
                f"Instance {instance_id} is reserved by another offer",
                context={"instance_id": instance_id},
            )
        raise NotOwner(f"Instance {instance_id} does not belong to {owner_id}")

    async def unlock(
        self, instance_id: str, offer_id: str, *, owner_id: str | None = None
    ) -> UnlockOutcome:
        """Release the lock ``offer_id`` holds on ``instance_id``.

        With ``owner_id`` the lock is only released while that player still
        owns the instance; a lock riding along with an instance that changed
        hands reports ``OWNER_CHANGED`` and stays in place.
        """
        for _ in range(2):
            with storage_errors("unlock"):
                released = await self._instances.compare_and_set_lock(
                    instance_id, offer_id, None, owner_id=owner_id
                )
                if released:
                    return UnlockOutcome.RELEASED
                current = await self._instances.get(instance_id)
            if current is None:
                return UnlockOutcome.MISSING
            if current.locked_by is None:
                return UnlockOutcome.ALREADY_RELEASED
            if current.locked_by != offer_id:
                break
            if owner_id is not None and current.owner_id != owner_id:
                return UnlockOutcome.OWNER_CHANGED
            # The instance came back to its owner between the two reads.
        logger.warning(
            "Unlock of %s by offer %s refused: held by %s.",
            instance_id,
            offer_id,
            current.locked_by,
        )
        return UnlockOutcome.MISMATCHED

    async def is_locked(self, instance_id: str) -> bool:
        with storage_errors("lock.read"):
            current = await self._instances.get(instance_id)
        if current is None:
            raise InstanceNotFound(f"Instance {instance_id} not found")
        return current.is_locked
