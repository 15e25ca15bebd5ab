"""Trade executor: publishing, cancelling and accepting swap offers.

Every store interaction is a conditional write that may fail or time out.
Writes issued before the linearization point (the offer insert for
publishing, the status compare-and-set for cancelling and accepting) are
journaled in a compensation stack and unwound if the operation cannot finish.
Work after the linearization point always runs to completion; its failures
are escalated as reconciliation events instead of being reported to the
caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from .audit import TradeLog
from .cards import CardCatalog
from .clock import MonotonicClock, new_id
from .events import (
    OFFER_CANCELLED,
    OFFER_PUBLISHED,
    RECONCILIATION_NEEDED,
    TRADE_COMPLETED,
    EventBus,
)
from .exceptions import (
    AlreadyLocked,
    CardSwapError,
    DeadlineExceeded,
    InvalidCard,
    NeedsReconciliation,
    NoLongerActive,
    NotEligible,
    NotOwner,
    StorageUnavailable,
    TradeIncomplete,
    storage_errors,
)
from .locks import InstanceLockManager, UnlockOutcome
from .offers import OfferBook
from ..config import ExecutorConfig
from ..storage.base import (
    ActivityLog,
    CardInstanceRecord,
    InstanceStore,
    OfferRecord,
    OfferStatus,
    ReconciliationEvent,
    ReconciliationStore,
    SettlementRequest,
    SettlementResult,
    SettlementStore,
    TradeRecord,
)

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class TradeReceipt:
    offer_id: str
    maker_id: str
    taker_id: str
    received_instance_id: str
    given_instance_id: str
    completed_at: datetime


class CompensationFailed(RuntimeError):
    """Raised by a compensation step that could not restore prior state."""


class _CompensationStack:
    """Undo actions for writes already issued, unwound newest first."""

    def __init__(self) -> None:
        self._steps: list[tuple[str, Compensation]] = []

    def push(self, label: str, action: Compensation) -> None:
        self._steps.append((label, action))

    def clear(self) -> None:
        self._steps.clear()

    def __bool__(self) -> bool:
        return bool(self._steps)

    async def unwind(self) -> list[str]:
        failed: list[str] = []
        while self._steps:
            label, action = self._steps.pop()
            try:
                await action()
            except (CardSwapError, CompensationFailed) as exc:
                logger.warning("Compensation '%s' failed: %s", label, exc)
                failed.append(label)
        return failed


@dataclass(slots=True)
class _Progress:
    linearizing_write_issued: bool = False


class TradeExecutor:
    """Run the publish, cancel and accept protocols against the shared store."""

    def __init__(
        self,
        *,
        offers: OfferBook,
        locks: InstanceLockManager,
        instance_store: InstanceStore,
        trade_log: TradeLog,
        reconciliation_store: ReconciliationStore,
        catalog: CardCatalog,
        event_bus: EventBus,
        clock: MonotonicClock,
        config: ExecutorConfig,
        activity_log: ActivityLog | None = None,
        settlement_store: SettlementStore | None = None,
    ) -> None:
        self._offers = offers
        self._locks = locks
        self._instances = instance_store
        self._trade_log = trade_log
        self._reconciliation = reconciliation_store
        self._catalog = catalog
        self._events = event_bus
        self._clock = clock
        self._config = config
        self._activity = activity_log
        self._settlement = settlement_store

    @property
    def uses_transactions(self) -> bool:
        return self._settlement is not None

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(
        self, maker_id: str, instance_id: str, requested_card_id: str
    ) -> OfferRecord:
        offer_id = new_id()
        undo = _CompensationStack()
        try:
            async with self._deadline():
                instance = await self._read_instance(instance_id)
                if instance is None:
                    raise InvalidCard(f"Instance {instance_id} not found")
                if instance.owner_id != maker_id:
                    raise NotOwner(f"Instance {instance_id} does not belong to {maker_id}")
                if instance.is_locked:
                    raise AlreadyLocked(
                        f"Instance {instance_id} is already offered",
                        context={"instance_id": instance_id},
                    )
                self._offers.check_terms(instance.card_id, requested_card_id)

                undo.push("release offered instance", lambda: self._undo_lock(instance_id, offer_id))
                await self._locks.lock(instance_id, offer_id, owner_id=maker_id)

                undo.push("withdraw offer row", lambda: self._undo_insert(offer_id))
                offer = await self._offers.create_offer(
                    offer_id,
                    maker_id,
                    instance_id,
                    instance.card_id,
                    requested_card_id,
                )
        except TimeoutError as exc:
            await self._unwind(undo, "publish", offer_id, [instance_id], NeedsReconciliation)
            raise DeadlineExceeded(f"Publishing {instance_id} timed out") from exc
        except CardSwapError:
            await self._unwind(undo, "publish", offer_id, [instance_id], NeedsReconciliation)
            raise

        logger.info(
            "Offer %s published by %s: %s for %s.",
            offer.offer_id,
            maker_id,
            offer.offered_card_id,
            offer.requested_card_id,
        )
        await self._note_activity(
            maker_id,
            "SWAP_PUBLISHED",
            f"Offered {self._card_name(offer.offered_card_id)} "
            f"for {self._card_name(offer.requested_card_id)}.",
        )
        await self._events.publish_quietly(OFFER_PUBLISHED, _offer_payload(offer))
        return offer

    async def _undo_lock(self, instance_id: str, offer_id: str) -> None:
        # Only a lock held by this offer is released; anything else is not ours.
        await self._locks.unlock(instance_id, offer_id)

    async def _undo_insert(self, offer_id: str) -> None:
        offer = await self._offers.find_offer(offer_id)
        if offer is None or not offer.is_active:
            return
        try:
            await self._offers.set_terminal(offer_id, OfferStatus.CANCELLED)
        except NoLongerActive:
            return

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel(self, maker_id: str, offer_id: str) -> OfferRecord:
        progress = _Progress()
        offer: OfferRecord | None = None
        try:
            async with self._deadline():
                offer = await self._offers.get_offer(offer_id)
                if offer.maker_id != maker_id:
                    raise NotOwner(f"Offer {offer_id} belongs to another player")
                if not offer.is_active:
                    raise NoLongerActive(f"Offer {offer_id} is already {offer.status.value}")
                progress.linearizing_write_issued = True
                closed_at = await self._offers.set_terminal(offer_id, OfferStatus.CANCELLED)
        except TimeoutError as exc:
            current = None
            if progress.linearizing_write_issued:
                current = await self._offers.find_offer(offer_id)
            if current is None or current.status is not OfferStatus.CANCELLED:
                raise DeadlineExceeded(f"Cancelling {offer_id} timed out") from exc
            closed_at = current.closed_at or self._clock.now()

        assert offer is not None
        cancelled = replace(offer, status=OfferStatus.CANCELLED, closed_at=closed_at)
        await self._release_after_cancel(cancelled)

        logger.info("Offer %s cancelled by %s.", offer_id, maker_id)
        await self._note_activity(
            maker_id,
            "SWAP_CANCELLED",
            f"Withdrew offer of {self._card_name(cancelled.offered_card_id)}.",
        )
        await self._events.publish_quietly(OFFER_CANCELLED, _offer_payload(cancelled))
        return cancelled

    async def _release_after_cancel(self, offer: OfferRecord) -> None:
        outcome: UnlockOutcome | None = None
        try:
            outcome = await self._locks.unlock(
                offer.offered_instance_id, offer.offer_id, owner_id=offer.maker_id
            )
        except StorageUnavailable as exc:
            logger.warning("Unlock after cancelling %s failed: %s", offer.offer_id, exc)
        if outcome is UnlockOutcome.RELEASED:
            return
        if outcome is UnlockOutcome.OWNER_CHANGED:
            # An acceptance is mid-flight; its rollback returns and unlocks the instance.
            logger.info(
                "Instance %s is in flight for offer %s; leaving its lock to the trade.",
                offer.offered_instance_id,
                offer.offer_id,
            )
            return
        await self._escalate(
            "cancel_unlock_failed",
            offer.offer_id,
            [offer.offered_instance_id],
            {"unlock": outcome.value if outcome else "error"},
        )

    # ------------------------------------------------------------------
    # Accept
    # ------------------------------------------------------------------

    async def accept(
        self, taker_id: str, offer_id: str, paying_instance_id: str
    ) -> TradeReceipt:
        undo = _CompensationStack()
        progress = _Progress()
        offer: OfferRecord | None = None
        try:
            async with self._deadline():
                offer = await self._offers.get_offer(offer_id)
                if not offer.is_active:
                    raise NoLongerActive(f"Offer {offer_id} is already {offer.status.value}")
                await self._check_taker(offer, taker_id, paying_instance_id)
                if self._settlement is not None:
                    closed_at = await self._settle_atomically(
                        offer, taker_id, paying_instance_id, undo, progress
                    )
                else:
                    closed_at = await self._settle_two_step(
                        offer, taker_id, paying_instance_id, undo, progress
                    )
        except TimeoutError as exc:
            landed = None
            if offer is not None and progress.linearizing_write_issued:
                landed = await self._resolve_ambiguous(offer, taker_id, paying_instance_id, undo)
            if landed is None:
                await self._unwind(
                    undo, "accept", offer_id, _trade_instances(offer, paying_instance_id), TradeIncomplete
                )
                raise DeadlineExceeded(f"Accepting {offer_id} timed out") from exc
            closed_at = landed.closed_at or self._clock.now()
        except CardSwapError:
            await self._unwind(
                undo, "accept", offer_id, _trade_instances(offer, paying_instance_id), TradeIncomplete
            )
            raise

        assert offer is not None
        return await self._finish_trade(offer, taker_id, paying_instance_id, closed_at)

    async def _check_taker(
        self, offer: OfferRecord, taker_id: str, paying_instance_id: str
    ) -> CardInstanceRecord:
        if taker_id == offer.maker_id:
            raise NotEligible("You cannot accept your own offer")
        paying = await self._read_instance(paying_instance_id)
        if paying is None:
            raise NotEligible(f"Instance {paying_instance_id} not found")
        if paying.owner_id != taker_id:
            raise NotEligible(f"Instance {paying_instance_id} does not belong to you")
        if paying.is_locked:
            raise NotEligible(f"Instance {paying_instance_id} is reserved by another offer")
        if paying.card_id != offer.requested_card_id:
            raise NotEligible(
                f"Offer requires {self._card_name(offer.requested_card_id)}, "
                f"got {self._card_name(paying.card_id)}"
            )
        return paying

    async def _settle_atomically(
        self,
        offer: OfferRecord,
        taker_id: str,
        paying_instance_id: str,
        undo: _CompensationStack,
        progress: _Progress,
    ) -> datetime:
        assert self._settlement is not None
        request = SettlementRequest(
            offer_id=offer.offer_id,
            maker_id=offer.maker_id,
            taker_id=taker_id,
            offered_instance_id=offer.offered_instance_id,
            paying_instance_id=paying_instance_id,
            requested_card_id=offer.requested_card_id,
            closed_at=self._clock.now(),
        )
        progress.linearizing_write_issued = True
        try:
            with storage_errors("settle"):
                result = await self._settlement.settle(request)
        except StorageUnavailable:
            landed = await self._resolve_ambiguous(offer, taker_id, paying_instance_id, undo)
            if landed is None:
                raise
            return landed.closed_at or request.closed_at

        if result is SettlementResult.SETTLED:
            return request.closed_at
        if result is SettlementResult.PAYING_INELIGIBLE:
            raise NotEligible(f"Instance {paying_instance_id} changed before the trade settled")
        raise NoLongerActive(f"Offer {offer.offer_id} was taken or withdrawn")

    async def _settle_two_step(
        self,
        offer: OfferRecord,
        taker_id: str,
        paying_instance_id: str,
        undo: _CompensationStack,
        progress: _Progress,
    ) -> datetime:
        maker_id = offer.maker_id

        # Step one: the offered instance travels to the taker, still locked by
        # the offer so it cannot be re-listed while the trade is in flight.
        undo.push(
            "return offered instance",
            lambda: self._restore_offered(offer, taker_id),
        )
        moved = await self._transfer(
            offer.offered_instance_id,
            from_owner=maker_id,
            to_owner=taker_id,
            expected_lock=offer.offer_id,
            new_lock=offer.offer_id,
        )
        if not moved:
            raise NoLongerActive(f"Offer {offer.offer_id} was taken or withdrawn")

        # Step two: the paying instance travels to the maker.
        undo.push(
            "return paying instance",
            lambda: self._return_paying(paying_instance_id, maker_id, taker_id),
        )
        await self._move_paying(paying_instance_id, taker_id, maker_id)

        progress.linearizing_write_issued = True
        try:
            return await self._offers.set_terminal(offer.offer_id, OfferStatus.COMPLETED)
        except StorageUnavailable:
            landed = await self._resolve_ambiguous(offer, taker_id, paying_instance_id, undo)
            if landed is None:
                raise
            return landed.closed_at or self._clock.now()

    async def _move_paying(self, instance_id: str, taker_id: str, maker_id: str) -> None:
        attempts = 1 + max(0, self._config.step_retries)
        last_error: CardSwapError | None = None
        for attempt in range(1, attempts + 1):
            try:
                moved = await self._transfer(
                    instance_id,
                    from_owner=taker_id,
                    to_owner=maker_id,
                    expected_lock=None,
                    new_lock=None,
                )
            except StorageUnavailable as exc:
                last_error = exc
            else:
                if moved:
                    return
                if isinstance(last_error, StorageUnavailable):
                    # The failed attempt may have been applied after all.
                    current = await self._read_instance(instance_id)
                    if current is not None and current.owner_id == maker_id and not current.is_locked:
                        return
                last_error = NotEligible(f"Instance {instance_id} changed during the trade")
            if attempt < attempts:
                logger.warning(
                    "Transfer of %s to %s failed (attempt %s/%s): %s",
                    instance_id,
                    maker_id,
                    attempt,
                    attempts,
                    last_error,
                )
                if self._config.retry_delay_seconds > 0:
                    await asyncio.sleep(self._config.retry_delay_seconds)
        assert last_error is not None
        raise last_error

    async def _restore_offered(self, offer: OfferRecord, taker_id: str) -> None:
        instance_id = offer.offered_instance_id
        current = await self._read_instance(instance_id)
        if current is None:
            raise CompensationFailed(f"Instance {instance_id} disappeared mid-trade")
        if current.owner_id != taker_id:
            return
        if current.locked_by not in (offer.offer_id, None):
            raise CompensationFailed(f"Instance {instance_id} was re-offered mid-trade")
        moved = await self._transfer(
            instance_id,
            from_owner=taker_id,
            to_owner=offer.maker_id,
            expected_lock=current.locked_by,
            new_lock=offer.offer_id,
        )
        if not moved:
            raise CompensationFailed(f"Instance {instance_id} could not be returned")
        latest = await self._offers.find_offer(offer.offer_id)
        if latest is None or not latest.is_active:
            await self._locks.unlock(instance_id, offer.offer_id)

    async def _return_paying(self, instance_id: str, maker_id: str, taker_id: str) -> None:
        current = await self._read_instance(instance_id)
        if current is None:
            raise CompensationFailed(f"Instance {instance_id} disappeared mid-trade")
        if current.owner_id == taker_id:
            return
        if current.owner_id != maker_id or current.is_locked:
            raise CompensationFailed(f"Instance {instance_id} moved on mid-trade")
        moved = await self._transfer(
            instance_id,
            from_owner=maker_id,
            to_owner=taker_id,
            expected_lock=None,
            new_lock=None,
        )
        if not moved:
            raise CompensationFailed(f"Instance {instance_id} could not be returned")

    async def _resolve_ambiguous(
        self,
        offer: OfferRecord,
        taker_id: str,
        paying_instance_id: str,
        undo: _CompensationStack,
    ) -> OfferRecord | None:
        """Decide whether our completing write landed.

        Returns the completed offer if it did and None if it did not. When the
        store cannot even be read the outcome is unknown: nothing is rolled
        back and the trade is escalated.
        """
        try:
            current = await self._offers.find_offer(offer.offer_id)
            if current is None or current.status is not OfferStatus.COMPLETED:
                return None
            offered = await self._read_instance(offer.offered_instance_id)
        except StorageUnavailable as exc:
            undo.clear()
            instances = [offer.offered_instance_id, paying_instance_id]
            await self._escalate(
                "trade_outcome_unknown", offer.offer_id, instances, {"taker_id": taker_id}
            )
            raise TradeIncomplete(
                f"Outcome of trade {offer.offer_id} is unknown",
                context={"offer_id": offer.offer_id, "instances": instances},
            ) from exc
        if offered is None or offered.owner_id != taker_id:
            return None
        return current

    async def _finish_trade(
        self,
        offer: OfferRecord,
        taker_id: str,
        paying_instance_id: str,
        closed_at: datetime,
    ) -> TradeReceipt:
        outcome: UnlockOutcome | None = None
        try:
            outcome = await self._locks.unlock(offer.offered_instance_id, offer.offer_id)
        except StorageUnavailable as exc:
            logger.warning("Unlock after completing %s failed: %s", offer.offer_id, exc)
        if outcome is None or not outcome.ok:
            await self._escalate(
                "trade_unlock_failed",
                offer.offer_id,
                [offer.offered_instance_id],
                {"unlock": outcome.value if outcome else "error"},
            )

        record = TradeRecord(
            offer_id=offer.offer_id,
            maker_id=offer.maker_id,
            taker_id=taker_id,
            maker_instance_id=offer.offered_instance_id,
            taker_instance_id=paying_instance_id,
            created_at=closed_at,
        )
        try:
            await self._trade_log.append(record)
        except StorageUnavailable as exc:
            logger.warning("Trade record for %s not written: %s", offer.offer_id, exc)
            await self._escalate(
                "trade_record_missing",
                offer.offer_id,
                [offer.offered_instance_id, paying_instance_id],
                {"taker_id": taker_id},
            )

        logger.info(
            "Offer %s completed: %s -> %s, %s -> %s.",
            offer.offer_id,
            offer.offered_instance_id,
            taker_id,
            paying_instance_id,
            offer.maker_id,
        )
        offered_name = self._card_name(offer.offered_card_id)
        requested_name = self._card_name(offer.requested_card_id)
        await self._note_activity(
            offer.maker_id, "SWAP_COMPLETED", f"Traded {offered_name} for {requested_name}."
        )
        await self._note_activity(
            taker_id, "SWAP_COMPLETED", f"Traded {requested_name} for {offered_name}."
        )
        await self._events.publish_quietly(
            TRADE_COMPLETED,
            {
                "offer_id": offer.offer_id,
                "maker_id": offer.maker_id,
                "taker_id": taker_id,
                "maker_instance_id": offer.offered_instance_id,
                "taker_instance_id": paying_instance_id,
            },
        )
        return TradeReceipt(
            offer_id=offer.offer_id,
            maker_id=offer.maker_id,
            taker_id=taker_id,
            received_instance_id=offer.offered_instance_id,
            given_instance_id=paying_instance_id,
            completed_at=closed_at,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _deadline(self):
        seconds = self._config.deadline_seconds
        return asyncio.timeout(seconds if seconds and seconds > 0 else None)

    async def _read_instance(self, instance_id: str) -> CardInstanceRecord | None:
        with storage_errors("instance.get"):
            return await self._instances.get(instance_id)

    async def _transfer(
        self,
        instance_id: str,
        *,
        from_owner: str,
        to_owner: str,
        expected_lock: str | None,
        new_lock: str | None,
    ) -> bool:
        with storage_errors("instance.transfer"):
            return await self._instances.transfer(
                instance_id,
                from_owner=from_owner,
                to_owner=to_owner,
                expected_lock=expected_lock,
                new_lock=new_lock,
            )

    async def _unwind(
        self,
        undo: _CompensationStack,
        operation: str,
        offer_id: str,
        instance_ids: Sequence[str],
        escalation: type[CardSwapError],
    ) -> None:
        if not undo:
            return
        failed = await undo.unwind()
        if not failed:
            logger.warning("%s of %s rolled back.", operation.capitalize(), offer_id)
            return
        await self._escalate(
            f"{operation}_compensation_failed",
            offer_id,
            instance_ids,
            {"failed_steps": failed},
        )
        raise escalation(
            f"{operation.capitalize()} of {offer_id} left state inconsistent",
            context={"offer_id": offer_id, "instances": list(instance_ids), "failed_steps": failed},
        )

    async def _escalate(
        self,
        kind: str,
        offer_id: str | None,
        instance_ids: Sequence[str],
        details: dict[str, Any],
    ) -> ReconciliationEvent:
        event = ReconciliationEvent(
            event_id=new_id(),
            kind=kind,
            offer_id=offer_id,
            instance_ids=list(instance_ids),
            created_at=self._clock.now(),
            details=dict(details),
        )
        logger.error(
            "Reconciliation needed (%s) for offer %s, instances %s: %s",
            kind,
            offer_id,
            ", ".join(instance_ids),
            details,
        )
        try:
            with storage_errors("reconciliation.add"):
                await self._reconciliation.add(event)
        except StorageUnavailable:
            logger.critical("Reconciliation event %s could not be stored.", event.event_id)
        await self._events.publish_quietly(
            RECONCILIATION_NEEDED,
            {"event_id": event.event_id, "kind": kind, "offer_id": offer_id},
        )
        return event

    async def _note_activity(self, player_id: str, kind: str, description: str) -> None:
        if self._activity is None:
            return
        try:
            await self._activity.record_event(player_id, kind, description)
        except Exception as exc:
            logger.warning("Activity '%s' for %s not recorded: %s", kind, player_id, exc)

    def _card_name(self, card_id: str) -> str:
        try:
            return self._catalog.get_card(card_id).name
        except KeyError:
            return card_id


def _offer_payload(offer: OfferRecord) -> dict[str, Any]:
    return {
        "offer_id": offer.offer_id,
        "maker_id": offer.maker_id,
        "offered_instance_id": offer.offered_instance_id,
        "offered_card_id": offer.offered_card_id,
        "requested_card_id": offer.requested_card_id,
        "status": offer.status.value,
    }


def _trade_instances(offer: OfferRecord | None, paying_instance_id: str) -> list[str]:
    if offer is None:
        return [paying_instance_id]
    return [offer.offered_instance_id, paying_instance_id]
