from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from condemn.domain.duration import InvalidDuration
from condemn.domain.models import RenewOutcome, SwitchRecord, isoformat_utc
from condemn.logging_utils import log_event
from condemn.observability import events
from condemn.repositories.switch_store import SwitchStore
from condemn.services.notifier import NotifierDispatcher


def utc_now() -> datetime:
    return datetime.now(UTC)


def early_seconds_between(now: datetime, window_start: datetime) -> int:
    # 0 would read as "dead" to command notifiers.
    return max(1, math.ceil((window_start - now).total_seconds()))


class SwitchEngine:
    """Registers, renews and expires switches on top of a `SwitchStore`.

    The engine holds no state of its own. Request handlers and the expiry
    scanner may call it concurrently; the store's atomic `claim` and `take`
    keep every expiry down to a single dead notification.
    """

    def __init__(
        self,
        store: SwitchStore,
        dispatcher: NotifierDispatcher,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.logger = logger or logging.getLogger("condemn.engine")
        self.clock = clock

    def register_or_renew(
        self,
        name: str,
        deadline: timedelta,
        window: timedelta | None = None,
    ) -> RenewOutcome:
        now = self.clock()
        try:
            new_deadline = now + deadline
            window_start = new_deadline - window if window is not None else None
        except OverflowError as exc:
            raise InvalidDuration(f"deadline for {name!r} is out of range") from exc

        previous = self.store.metadata_of([name]).get(name)
        early_seconds: int | None = None
        if (
            previous is not None
            and previous.window_start is not None
            and now < previous.window_start
        ):
            early_seconds = early_seconds_between(now, previous.window_start)

        record = SwitchRecord(name=name, deadline=new_deadline, window_start=window_start)
        self.store.upsert(record)

        if previous is not None and previous.deadline <= now:
            self.logger.warning(
                log_event(
                    events.SWITCH_LATE_RENEWAL,
                    switch=name,
                    missed_deadline=isoformat_utc(previous.deadline),
                )
            )

        if early_seconds is not None:
            self.logger.warning(
                log_event(events.SWITCH_EARLY, switch=name, early_seconds=early_seconds)
            )
            self.dispatcher.notify(name, early_seconds)

        status = "created" if previous is None else "renewed"
        self.logger.info(
            log_event(
                events.SWITCH_CREATED if previous is None else events.SWITCH_RENEWED,
                switch=name,
                deadline=isoformat_utc(new_deadline),
                window_start=isoformat_utc(window_start),
            )
        )
        return RenewOutcome(
            name=name,
            status=status,
            early_seconds=early_seconds,
            deadline=new_deadline,
            window_start=window_start,
        )

    def check_in(self, name: str) -> RenewOutcome:
        """Disarm a switch, reporting it dead if it was late or early if too soon."""
        now = self.clock()
        record = self.store.take(name)
        if record is None:
            self.logger.info(log_event(events.SWITCH_CHECK_IN_NOT_FOUND, switch=name))
            return RenewOutcome(name=name, status="not_found")

        late = record.deadline <= now
        early_seconds: int | None = None
        if late:
            self.logger.warning(log_event(events.SWITCH_DEAD, switch=name, source="check_in"))
            self.dispatcher.notify(name, None)
        elif record.window_start is not None and now < record.window_start:
            early_seconds = early_seconds_between(now, record.window_start)
            self.logger.warning(
                log_event(events.SWITCH_EARLY, switch=name, early_seconds=early_seconds)
            )
            self.dispatcher.notify(name, early_seconds)

        self.logger.info(
            log_event(
                events.SWITCH_CHECKED_IN,
                switch=name,
                late=late,
                early_seconds=early_seconds,
            )
        )
        return RenewOutcome(
            name=name,
            status="checked_in",
            early_seconds=early_seconds,
            late=late,
            deadline=record.deadline,
            window_start=record.window_start,
        )

    def process_expired(self, now: datetime | None = None) -> int:
        cutoff = now or self.clock()
        names = list(self.store.due_before(cutoff))
        if not names:
            return 0

        metadata = self.store.metadata_of(names)
        claimed = self.store.claim(names, cutoff=cutoff)
        for name in names:
            if name not in claimed:
                self.logger.debug(log_event(events.SCAN_CLAIM_RACE, switch=name))
                continue
            record = metadata.get(name)
            self.logger.warning(
                log_event(
                    events.SWITCH_DEAD,
                    switch=name,
                    source="scanner",
                    deadline=isoformat_utc(record.deadline) if record is not None else None,
                )
            )
            self.dispatcher.notify(name, None)
        return len(claimed)

    def list_switches(self) -> list[SwitchRecord]:
        return self.store.all()
