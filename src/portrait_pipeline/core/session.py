"""Caller-side run guard and credits reservation around the pipeline."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from .exceptions import InvalidInputError
from .models import Photo, PipelineResult, Template
from .observability import LogContext
from .orchestrator import PipelineOrchestrator
from .protocols import LoggerProtocol, ProgressSink

DEFAULT_RUN_COST = 150


class CreditSource(str, Enum):
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"
    USAGE = "usage"


class CreditTransaction(BaseModel):
    source: CreditSource
    amount: int
    description: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CreditsLedger(BaseModel):
    """Credits balance. Subscription credits are spent before recharge credits."""

    subscription_credits: int = Field(default=0, ge=0)
    recharge_credits: int = Field(default=0, ge=0)
    used_credits: int = Field(default=0, ge=0)
    transactions: List[CreditTransaction] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.subscription_credits + self.recharge_credits

    def can_afford(self, amount: int) -> bool:
        return self.total >= amount

    def deduct(self, amount: int, description: str = "Portrait generation") -> bool:
        """Spend ``amount`` credits; returns False (and changes nothing) if short."""
        if amount < 0 or not self.can_afford(amount):
            return False

        from_subscription = min(self.subscription_credits, amount)
        self.subscription_credits -= from_subscription
        self.recharge_credits -= amount - from_subscription
        self.used_credits += amount
        self.transactions.insert(
            0,
            CreditTransaction(source=CreditSource.USAGE, amount=-amount, description=description),
        )
        return True

    def add(self, amount: int, source: CreditSource, description: str = "") -> None:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        if source == CreditSource.SUBSCRIPTION:
            self.subscription_credits += amount
        else:
            self.recharge_credits += amount
        self.transactions.insert(
            0, CreditTransaction(source=source, amount=amount, description=description)
        )


class GenerationSession:
    """
    Guards a logical session so only one pipeline run is active at a time.

    Credits are reserved before the run, deducted when it succeeds and released
    when it fails.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        ledger: CreditsLedger,
        logger: LoggerProtocol,
        cost_per_run: int = DEFAULT_RUN_COST,
    ):
        self._orchestrator = orchestrator
        self.ledger = ledger
        self._logger = logger
        self.cost_per_run = cost_per_run
        self.in_progress = False
        self.pending_credits: Optional[int] = None
        self.last_result: Optional[PipelineResult] = None

    async def start(
        self,
        photos: Sequence[Photo],
        templates: Sequence[Template],
        on_progress: Optional[ProgressSink] = None,
    ) -> PipelineResult:
        context = LogContext(component="session").with_operation("start")
        if self.in_progress:
            return PipelineResult.from_error(
                InvalidInputError("A generation run is already in progress")
            )
        if not self.ledger.can_afford(self.cost_per_run):
            return PipelineResult.from_error(
                InvalidInputError(
                    f"Insufficient credits: {self.ledger.total} available, "
                    f"{self.cost_per_run} required"
                )
            )

        self.in_progress = True
        self.pending_credits = self.cost_per_run
        try:
            result = await self._orchestrator.run(photos, templates, on_progress)
        finally:
            self.in_progress = False

        if not result.success:
            self._logger.info("Credit reservation released", context)
        elif self.ledger.deduct(self.pending_credits):
            self._logger.info(
                "Credits deducted",
                context,
                amount=self.pending_credits,
                remaining=self.ledger.total,
            )
        else:
            # balance drained while the run was in flight; the images are kept
            self._logger.warning(
                "Credits could not be deducted after a successful run",
                context,
                amount=self.pending_credits,
                available=self.ledger.total,
            )
        self.pending_credits = None
        self.last_result = result
        return result
