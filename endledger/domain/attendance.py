"""Daily check-in for single users and in capped batches."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Sequence

from ..skland.api import ATTENDANCE_ALREADY_SIGNED
from ..skland.client import GameApiClient
from ..storage.base import SignCounts, SignStatsStore
from .accounts import AccountService
from .events import SIGN_COMPLETED, EventBus, SignEvent
from .exceptions import EndLedgerError
from .results import ServiceResult

logger = logging.getLogger(__name__)

SIGNED = "success"
ALREADY_SIGNED = "signed"
FAILED = "fail"
SKIPPED = "skip"


@dataclass(slots=True)
class SignOutcome:
    user_id: str
    status: str
    label: str
    detail: str = ""
    awards: list[str] = field(default_factory=list)

    @property
    def line(self) -> str:
        marks = {SIGNED: "OK", ALREADY_SIGNED: "already signed", FAILED: "FAILED", SKIPPED: "skipped"}
        text = f"[{marks[self.status]}] {self.label}"
        return f"{text} {self.detail}".rstrip()


@dataclass(slots=True)
class BatchSignReport:
    outcomes: list[SignOutcome] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def summary(self, max_lines: int = 40) -> str:
        head = (
            f"Check-in finished: success {self.count(SIGNED)} | "
            f"already {self.count(ALREADY_SIGNED)} | failed {self.count(FAILED)}"
        )
        lines = [outcome.line for outcome in self.outcomes]
        if len(lines) > max_lines:
            lines = lines[:max_lines] + [f"... {len(self.outcomes) - max_lines} more"]
        return "\n".join([head, *lines])


def format_awards(response: dict[str, Any]) -> list[str]:
    data = response.get("data") if isinstance(response.get("data"), dict) else {}
    out = []
    for award in data.get("awards") or []:
        if not isinstance(award, dict):
            continue
        resource = award.get("resource") if isinstance(award.get("resource"), dict) else {}
        name = resource.get("name") or resource.get("id") or "unknown"
        out.append(f"{name} x {award.get('count') or 0}")
    return out


class AttendanceService:
    def __init__(
        self,
        accounts: AccountService,
        client: GameApiClient,
        stats: SignStatsStore,
        *,
        event_bus: EventBus | None = None,
        concurrency: int = 3,
        min_interval: float = 1.0,
        max_interval: float = 3.0,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._accounts = accounts
        self._client = client
        self._stats = stats
        self._event_bus = event_bus
        self._concurrency = max(1, int(concurrency))
        self._min_interval = max(0.0, float(min_interval))
        self._max_interval = max(self._min_interval, float(max_interval))
        self._rng = rng or random.Random()
        self._today = today
        self._batch_running = False

    @property
    def batch_running(self) -> bool:
        return self._batch_running

    async def sign(self, user_id: str) -> ServiceResult:
        outcome = await self._sign_one(str(user_id))
        if outcome.status == SKIPPED:
            return ServiceResult.failure(f"No usable account: {outcome.detail}", outcome=outcome)
        if outcome.status == FAILED:
            return ServiceResult.failure(f"Check-in failed for {outcome.label}: {outcome.detail}", outcome=outcome)
        if outcome.status == ALREADY_SIGNED:
            return ServiceResult.success(f"{outcome.label} already checked in today", outcome=outcome)
        awards = "\n".join(f"- {award}" for award in outcome.awards) or "(no reward details)"
        return ServiceResult.success(f"{outcome.label} checked in\n{awards}", outcome=outcome)

    async def sign_all(self, user_ids: Sequence[str] | None = None) -> ServiceResult:
        """Check in every auto-sign user (or ``user_ids``) in capped batches."""
        if self._batch_running:
            return ServiceResult.failure("A batch check-in is already running")
        self._batch_running = True
        try:
            users = list(user_ids) if user_ids is not None else await self._accounts.list_auto_sign_users()
            report = BatchSignReport()
            if not users:
                return ServiceResult.success("No users to check in", report=report)

            for start in range(0, len(users), self._concurrency):
                batch = users[start : start + self._concurrency]
                report.outcomes.extend(await asyncio.gather(*(self._sign_one(str(u)) for u in batch)))
                if start + self._concurrency < len(users) and self._max_interval > 0:
                    await asyncio.sleep(self._next_interval())

            logger.info(
                "Batch check-in done: %d users, %d ok, %d failed",
                len(users),
                report.count(SIGNED),
                report.count(FAILED),
            )
            return ServiceResult.success(report.summary(), report=report)
        finally:
            self._batch_running = False

    async def counts(self, day: date | None = None) -> SignCounts:
        return await self._stats.counts(day or self._today())

    def _next_interval(self) -> float:
        if self._min_interval == self._max_interval:
            return self._min_interval
        return self._rng.uniform(self._min_interval, self._max_interval)

    async def _sign_one(self, user_id: str) -> SignOutcome:
        active = await self._accounts.get_active_account(user_id)
        account = active.account
        if account is None:
            return SignOutcome(user_id, SKIPPED, user_id, "not bound")
        label = f"UID:{account.role_id or '-'} {account.display_name}"
        if not account.can_call_api:
            return SignOutcome(user_id, SKIPPED, label, "incomplete account data")

        try:
            response = await self._client.attendance(account.credential, account.role_id)
        except (EndLedgerError, ValueError) as exc:
            await self._record(FAILED)
            return SignOutcome(user_id, FAILED, label, str(exc))

        if response is None:
            outcome = SignOutcome(user_id, FAILED, label, "request failed")
        elif response.get("code") == 0:
            outcome = SignOutcome(user_id, SIGNED, label, awards=format_awards(response))
        elif response.get("code") == ATTENDANCE_ALREADY_SIGNED:
            outcome = SignOutcome(user_id, ALREADY_SIGNED, label)
        else:
            outcome = SignOutcome(user_id, FAILED, label, str(response.get("message") or response.get("code")))

        await self._record(outcome.status)
        if self._event_bus is not None:
            await self._event_bus.publish(
                SIGN_COMPLETED,
                SignEvent(
                    user_id=user_id,
                    role_id=account.role_id,
                    success=outcome.status in (SIGNED, ALREADY_SIGNED),
                    already_signed=outcome.status == ALREADY_SIGNED,
                ),
            )
        return outcome

    async def _record(self, status: str) -> None:
        if status in (SIGNED, FAILED):
            await self._stats.increment(self._today(), status, 1)
