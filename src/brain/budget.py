"""Daily token budget and the ladder that throttles provider calls."""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo

import structlog

logger = structlog.get_logger()

# Ladder bands, most restrictive first
BLOCK_RATIO = 1.0
CRITICAL_RATIO = 0.9
LOW_RATIO = 0.75
MODERATE_RATIO = 0.5

CRITICAL_MAX_OUTPUT_TOKENS = 500
CRITICAL_MAX_HISTORY = 5
LOW_MAX_OUTPUT_TOKENS = 1024
LOW_MAX_HISTORY = 10
MODERATE_MAX_HISTORY = 20

EPOCH_STRESS_RELIEF = 20.0


@dataclass(frozen=True)
class LadderDefaults:
    """Unthrottled parameters the ladder starts from."""

    model: str
    cheap_model: str
    max_output_tokens: int
    max_history: int


@dataclass(frozen=True)
class BudgetParams:
    """Response parameters selected for the current usage ratio."""

    model: str
    max_output_tokens: int
    max_history: int
    should_block: bool


def usage_ratio(used: int, budget: int) -> float:
    """Fraction of the daily budget consumed."""
    if budget <= 0:
        raise ValueError(f"Token budget must be positive, got {budget}")
    return used / budget


def budget_aware_params(
    used: int, budget: int, defaults: LadderDefaults
) -> BudgetParams:
    """Map cumulative usage to a ladder band. Pure function."""
    ratio = usage_ratio(used, budget)

    if ratio >= BLOCK_RATIO:
        return BudgetParams(
            model=defaults.model,
            max_output_tokens=defaults.max_output_tokens,
            max_history=defaults.max_history,
            should_block=True,
        )

    if ratio >= CRITICAL_RATIO:
        return BudgetParams(
            model=defaults.cheap_model,
            max_output_tokens=min(CRITICAL_MAX_OUTPUT_TOKENS, defaults.max_output_tokens),
            max_history=min(CRITICAL_MAX_HISTORY, defaults.max_history),
            should_block=False,
        )

    if ratio >= LOW_RATIO:
        return BudgetParams(
            model=defaults.model,
            max_output_tokens=min(LOW_MAX_OUTPUT_TOKENS, defaults.max_output_tokens),
            max_history=min(LOW_MAX_HISTORY, defaults.max_history),
            should_block=False,
        )

    if ratio >= MODERATE_RATIO:
        return BudgetParams(
            model=defaults.model,
            max_output_tokens=defaults.max_output_tokens,
            max_history=min(MODERATE_MAX_HISTORY, defaults.max_history),
            should_block=False,
        )

    return BudgetParams(
        model=defaults.model,
        max_output_tokens=defaults.max_output_tokens,
        max_history=defaults.max_history,
        should_block=False,
    )


def stress_for_usage(ratio: float) -> float:
    """Stress added per tick the deeper usage sits in the upper bands."""
    if ratio > CRITICAL_RATIO:
        return 2.0
    if ratio > LOW_RATIO:
        return 1.0
    return 0.0


def usage_label(ratio: float) -> str:
    if ratio >= CRITICAL_RATIO:
        return "⚠️ Budget critical!"
    if ratio >= LOW_RATIO:
        return "⚡ Running low"
    if ratio >= MODERATE_RATIO:
        return "📊 Moderate usage"
    return "✅ Budget healthy"


def next_local_midnight(now: datetime, tz: tzinfo) -> datetime:
    """First local midnight strictly after ``now``, returned in UTC."""
    local = now.astimezone(tz)
    tomorrow = local.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time(0, 0), tzinfo=tz).astimezone(timezone.utc)


@dataclass
class BudgetState:
    """Token usage within the current budget epoch."""

    budget: int
    reset_at: datetime
    used: int = 0

    def __post_init__(self) -> None:
        if self.budget <= 0:
            raise ValueError(f"Token budget must be positive, got {self.budget}")

    @property
    def ratio(self) -> float:
        return usage_ratio(self.used, self.budget)

    def charge(self, tokens: int) -> None:
        """Add provider token usage to the current epoch."""
        if tokens > 0:
            self.used += tokens

    def check_reset(self, now: datetime, tz: tzinfo) -> bool:
        """Roll the epoch over when ``now`` has reached ``reset_at``."""
        if now < self.reset_at:
            return False
        logger.info(
            "Token budget epoch rollover",
            used=self.used,
            budget=self.budget,
            reset_at=self.reset_at.isoformat(),
        )
        self.used = 0
        self.reset_at = next_local_midnight(now, tz)
        return True
