"""Small shared helpers."""

from shipdag.core.utils.timer import Timer, stage_timer

__all__ = ["Timer", "stage_timer"]
