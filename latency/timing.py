import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

EXPLORER_TX_URL = "https://sepolia.basescan.org/tx/{tx_hash}"

PENDING = "pending"
SUCCESS = "success"
ERROR = "error"


class RecorderBusyError(RuntimeError):
    """Raised when a run is started while the previous one is still pending."""


@dataclass
class TimingSample:
    start_time: float
    end_time: float = 0.0
    duration: float = 0.0
    status: str = PENDING
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    sponsored: bool = False


def _now_ms() -> float:
    return time.time() * 1000.0


class TimingRecorder:
    """
    Ordered, in-memory list of timing samples, newest first.

    Only one sample may be pending at a time; it is finished in place by
    `succeed` or `fail`. Samples are only removed by `clear`.
    """

    def __init__(self, clock: Callable[[], float] = _now_ms):
        self.clock = clock
        self.samples: List[TimingSample] = []

    @property
    def is_running(self) -> bool:
        return bool(self.samples) and self.samples[0].status == PENDING

    def start(self) -> TimingSample:
        if self.is_running:
            raise RecorderBusyError("A transaction run is already in progress")
        sample = TimingSample(start_time=self.clock())
        self.samples.insert(0, sample)
        return sample

    def _finish(self, status: str, **fields) -> TimingSample:
        if not self.is_running:
            raise RuntimeError("No pending sample to finish")
        sample = self.samples[0]
        sample.end_time = self.clock()
        sample.duration = sample.end_time - sample.start_time
        sample.status = status
        for key, value in fields.items():
            setattr(sample, key, value)
        return sample

    def succeed(self, tx_hash: Optional[str], sponsored: bool = True) -> TimingSample:
        return self._finish(SUCCESS, tx_hash=tx_hash, sponsored=sponsored)

    def fail(self, error: str) -> TimingSample:
        return self._finish(ERROR, error=error or "Unknown error")

    def clear(self) -> None:
        self.samples = []

    @property
    def average_duration(self) -> float:
        if not self.samples:
            return 0.0
        return sum(s.duration for s in self.samples) / len(self.samples)

    @property
    def success_count(self) -> int:
        return sum(1 for s in self.samples if s.status == SUCCESS)

    def rows(self) -> List[Dict[str, str]]:
        """Display rows, newest first, numbered from the oldest run."""
        total = len(self.samples)
        rows = []
        for index, sample in enumerate(self.samples):
            if sample.tx_hash:
                short_hash = f"{sample.tx_hash[:10]}..."
                link = EXPLORER_TX_URL.format(tx_hash=sample.tx_hash)
            else:
                short_hash = "-"
                link = ""
            rows.append(
                {
                    "#": str(total - index),
                    "status": sample.status,
                    "duration": f"{round(sample.duration)}ms",
                    "tx_hash": short_hash,
                    "link": link,
                    "sponsored": "yes" if sample.sponsored else "no",
                    "timestamp": datetime.fromtimestamp(sample.start_time / 1000.0).strftime(
                        "%H:%M:%S"
                    ),
                }
            )
        return rows
