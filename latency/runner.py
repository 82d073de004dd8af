import logging
from typing import List, Optional

from latency.gateway_client import GatewayClient, GatewayRequestError
from latency.timing import TimingRecorder, TimingSample

logger = logging.getLogger(__name__)

COLUMNS = ["#", "status", "duration", "tx_hash", "sponsored", "timestamp"]


def run_transaction(
    client: GatewayClient,
    recorder: TimingRecorder,
    user_address: Optional[str],
    access_token: Optional[str],
) -> TimingSample:
    """Time one sponsored increment end to end and record the outcome."""
    recorder.start()
    try:
        result = client.sponsor_transaction(user_address, access_token)
    except GatewayRequestError as e:
        sample = recorder.fail(str(e))
        logger.info("Run failed after %.0fms: %s", sample.duration, sample.error)
        return sample
    except Exception as e:
        recorder.fail(str(e) or type(e).__name__)
        raise

    sample = recorder.succeed(result.get("txHash"), sponsored=bool(result.get("sponsored")))
    logger.info("Run succeeded in %.0fms tx=%s", sample.duration, sample.tx_hash)
    return sample


def render_summary(recorder: TimingRecorder) -> str:
    return (
        f"Total Tests: {len(recorder.samples)}  "
        f"Average Duration: {round(recorder.average_duration)}ms  "
        f"Successful: {recorder.success_count}"
    )


def render_table(recorder: TimingRecorder) -> str:
    rows = recorder.rows()
    if not rows:
        return "No results."
    widths = {c: max(len(c), *(len(r[c]) for r in rows)) for c in COLUMNS}
    lines: List[str] = [
        "  ".join(c.ljust(widths[c]) for c in COLUMNS),
        "  ".join("-" * widths[c] for c in COLUMNS),
    ]
    for row in rows:
        line = "  ".join(row[c].ljust(widths[c]) for c in COLUMNS)
        if row["link"]:
            line += f"  {row['link']}"
        lines.append(line.rstrip())
    return "\n".join(lines)
