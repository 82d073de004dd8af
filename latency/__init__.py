"""
Client side of the latency demo: calls the gateway and keeps timing samples.
"""

from .timing import TimingRecorder, TimingSample

__all__ = [
    "TimingRecorder",
    "TimingSample",
]
