import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from latency.gateway_client import GatewayClient
from latency.runner import render_summary, render_table, run_transaction
from latency.timing import TimingRecorder


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Measure end-to-end latency of sponsored increment() transactions."
    )
    parser.add_argument("--gateway-url", default=None, help="Gateway base URL (GATEWAY_URL).")
    parser.add_argument("--address", default=None, help="Embedded wallet address (USER_ADDRESS).")
    parser.add_argument("--token", default=None, help="User session token (USER_ACCESS_TOKEN).")
    parser.add_argument("--runs", default=1, type=int, help="Number of sequential runs.")
    parser.add_argument("--timeout", default=60.0, type=float, help="Per-request timeout in seconds.")
    parser.add_argument("--show-count", action="store_true", help="Print the contract counter before and after.")
    parser.add_argument("--env-file", default=".env")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    load_dotenv(args.env_file, override=False)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    gateway_url = args.gateway_url or os.getenv("GATEWAY_URL", "http://localhost:3001")
    address = args.address or os.getenv("USER_ADDRESS")
    token = args.token or os.getenv("USER_ACCESS_TOKEN")
    if args.runs < 1:
        parser.error("--runs must be >= 1")

    client = GatewayClient(gateway_url, timeout=args.timeout)
    recorder = TimingRecorder()

    if args.show_count:
        print(f"Current count: {client.get_contract_count() or 'unavailable'}")

    for _ in range(args.runs):
        run_transaction(client, recorder, address, token)

    print(render_table(recorder))
    print()
    print(render_summary(recorder))

    if args.show_count:
        print(f"Current count: {client.get_contract_count() or 'unavailable'}")

    return 0 if recorder.success_count == len(recorder.samples) else 1


if __name__ == "__main__":
    sys.exit(main())
