"""Mood registers: energy, stress and curiosity."""

import random
from dataclasses import dataclass

MOOD_MIN = 0.0
MOOD_MAX = 100.0

SLEEPY_PREFIXES = ["*yawn* ", "*stretches* ", "*blinks sleepily* "]

CURIOUS_FOLLOW_UPS = [
    "\n\nCurious - what made you think of that?",
    "\n\nInteresting! Want to tell me more?",
    "\n\nThat's got me thinking... anything else on your mind?",
]


def _clamp(value: float) -> float:
    return max(MOOD_MIN, min(MOOD_MAX, value))


@dataclass
class MoodState:
    """Three scalar registers, always kept within [0, 100].

    Energy depletes with activity and recovers over time, stress rises with
    errors and load and decays naturally, curiosity drifts and rises after
    idle periods.
    """

    energy: float = 100.0
    stress: float = 0.0
    curiosity: float = 50.0

    def __post_init__(self) -> None:
        self.energy = _clamp(self.energy)
        self.stress = _clamp(self.stress)
        self.curiosity = _clamp(self.curiosity)

    def adjust(
        self, energy: float = 0.0, stress: float = 0.0, curiosity: float = 0.0
    ) -> None:
        """Apply deltas and clamp every register."""
        self.energy = _clamp(self.energy + energy)
        self.stress = _clamp(self.stress + stress)
        self.curiosity = _clamp(self.curiosity + curiosity)

    def regulate(self, rng: random.Random) -> None:
        """One tick of natural recovery: energy up, stress down, curiosity drifts."""
        self.adjust(
            energy=2.0,
            stress=-1.0,
            curiosity=(rng.random() - 0.5) * 5.0,
        )

    @property
    def label(self) -> str:
        if self.energy < 30:
            return "tired"
        if self.stress > 50:
            return "stressed"
        if self.curiosity > 80:
            return "curious"
        return "content"

    @property
    def emoji(self) -> str:
        return {
            "tired": "😴",
            "stressed": "😰",
            "curious": "🤔",
        }.get(self.label, "😊")


def apply_mood_modifiers(text: str, mood: MoodState, rng: random.Random) -> str:
    """Colour a provider response with the current mood."""
    modified = text

    if mood.energy < 30 and rng.random() < 0.3:
        modified = rng.choice(SLEEPY_PREFIXES) + modified

    if mood.curiosity > 80 and rng.random() < 0.2 and "?" not in modified:
        modified += rng.choice(CURIOUS_FOLLOW_UPS)

    return modified
