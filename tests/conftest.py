"""Shared fixtures: a controllable clock and a fresh brain context."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from src.brain.budget import LadderDefaults
from src.brain.context import BrainContext

START = datetime(2026, 10, 18, 14, 30, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ladder():
    return LadderDefaults(
        model="big-model",
        cheap_model="small-model",
        max_output_tokens=4096,
        max_history=50,
    )


@pytest.fixture
def brain(clock, ladder):
    """Brain context in UTC with a 1000 token daily budget."""
    return BrainContext.create(
        daily_budget=1000,
        ladder=ladder,
        tz=timezone.utc,
        clock=clock,
        rng=random.Random(7),
    )
