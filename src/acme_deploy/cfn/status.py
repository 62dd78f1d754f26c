"""
Maps raw CloudFormation status strings onto a small set of display categories.
"""
from dataclasses import dataclass
from enum import Enum

import click


class StatusCategory(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in progress"
    FAILED = "failed"
    COMPLETE = "complete"


CATEGORY_COLOURS = {
    StatusCategory.PENDING: None,
    StatusCategory.IN_PROGRESS: "blue",
    StatusCategory.FAILED: "red",
    StatusCategory.COMPLETE: "green",
}

CATEGORY_SYMBOLS = {
    StatusCategory.PENDING: ".",
    StatusCategory.IN_PROGRESS: "o",
    StatusCategory.FAILED: "x",
    StatusCategory.COMPLETE: "✓",
}

TRANSITIONAL_SUFFIXES = ("_IN_PROGRESS", "_PENDING")


@dataclass(frozen=True)
class StatusRep:
    category: StatusCategory
    symbol: str

    def __str__(self) -> str:
        return style_category(self.symbol, self.category)


def classify(status: str) -> StatusRep:
    """
    Classify a raw status string. First matching rule wins, so deletions and
    rollbacks are reported as failed even when they also end in a progress or
    completion suffix.
    """
    if status == "REVIEW_IN_PROGRESS":
        category = StatusCategory.PENDING
    elif status.endswith("_FAILED") or status.startswith("DELETE_") or "ROLLBACK" in status:
        category = StatusCategory.FAILED
    elif status.endswith("_IN_PROGRESS"):
        category = StatusCategory.IN_PROGRESS
    elif status.endswith("_COMPLETE"):
        category = StatusCategory.COMPLETE
    else:
        category = StatusCategory.PENDING
    return StatusRep(category=category, symbol=CATEGORY_SYMBOLS[category])


def style_category(message: str, category: StatusCategory) -> str:
    colour = CATEGORY_COLOURS[category]
    if colour is None:
        return message
    return click.style(message, fg=colour)


def colourise(message: str, status: str) -> str:
    """Wrap a message in the colour for the accompanying status."""
    return style_category(message, classify(status).category)


def colourise_status(status: str) -> str:
    return colourise(status, status)


def is_settled(status: str) -> bool:
    return not status.endswith(TRANSITIONAL_SUFFIXES)


def is_change_set_ready(status: str) -> bool:
    return status == "FAILED" or status.endswith("_COMPLETE")
