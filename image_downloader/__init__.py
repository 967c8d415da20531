from image_downloader.classifier import SuggestionTier, classify, rank_for_display
from image_downloader.session import Session, Step
from image_downloader.workflow import Workflow

__all__ = [
    "Session",
    "Step",
    "SuggestionTier",
    "Workflow",
    "classify",
    "rank_for_display",
]
