"""Parser for the Prometheus text exposition format and time humanizing helpers."""

__version__ = "0.1.0"
__all__ = ["metrics", "names", "text_parse", "timefmt"]