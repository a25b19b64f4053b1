"""Spanish presentation of availability results and booking outcomes."""

from .formatter import PresentationFormatter, format_time_12h, relative_day_label

__all__ = ["PresentationFormatter", "format_time_12h", "relative_day_label"]
