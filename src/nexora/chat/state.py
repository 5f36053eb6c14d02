"""Application-level state shared by the send path and its surfaces."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Overlay(str, Enum):
    """The single feature panel open on top of the chat, if any."""

    NONE = "none"
    VISION = "vision"
    VOICE = "voice"
    PHOTOSHOP = "photoshop"
    VIDEO_TRANSCRIPT = "video_transcript"
    CONTENT_WRITER = "content_writer"
    INTERIOR_DESIGNER = "interior_designer"
    BRAND_IDENTITY = "brand_identity"
    MEETING_SUMMARIZER = "meeting_summarizer"
    TRIP_PLANNER = "trip_planner"
    HEALTH_COACH = "health_coach"
    VIDEO_TRANSLATOR = "video_translator"
    IMAGE_ENHANCER = "image_enhancer"
    FEATURES_MENU = "features_menu"
    SPECIALIST_PICKER = "specialist_picker"


@dataclass
class ThinkingProgress:
    """Progress projection shown instead of raw text in the pro tier."""

    steps: list[str] = field(default_factory=list)
    percentage: float = 0.0

    def record(self, labels: list[str], match_count: int, expected_total: int) -> None:
        """Merge newly scanned step labels and raise the percentage.

        Labels are kept as an ordered set. The percentage is capped at 90
        while streaming and never decreases.
        """
        for label in labels:
            if label not in self.steps:
                self.steps.append(label)
        target = min(90.0, match_count / expected_total * 100)
        self.percentage = max(self.percentage, target)

    def complete(self, final_label: str) -> None:
        if final_label not in self.steps:
            self.steps.append(final_label)
        self.percentage = 100.0


class CancellationToken:
    """Cooperative cancellation flag checked between stream chunks."""

    def __init__(self) -> None:
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


@dataclass
class AppState:
    """Mutable UI-facing state of one chat client."""

    overlay: Overlay = Overlay.NONE
    overlay_payload: dict[str, Any] | None = None
    specialist_mode: str | None = None
    is_loading: bool = False
    is_generating: bool = False
    api_ready: bool = True
    progress: ThinkingProgress | None = None
    last_notice: str | None = None

    def open_overlay(self, overlay: Overlay, payload: dict[str, Any] | None = None) -> None:
        """Open a panel, replacing whichever one was open."""
        self.overlay = overlay
        self.overlay_payload = payload if overlay is not Overlay.NONE else None

    def close_overlay(self) -> None:
        self.open_overlay(Overlay.NONE)
