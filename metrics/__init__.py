"""
Decode observability metrics.
"""

from metrics.decode_metrics import DecodeMetrics

__all__ = ["DecodeMetrics"]
