#!/usr/bin/env python3
"""Verify the proxy's failover contract against a running deployment.

Polls the proxy until the expected primary serves, makes the primary fail
through its chaos endpoints, sends a fixed number of requests through the proxy
and checks that all of them return 200 and that enough of them carry the
standby's pool identity. Exits 1 on any unmet condition.

Example:
  python scripts/verify_failover.py --target-url http://localhost:8080/version \
      --chaos-url http://localhost:8081 --expected-primary blue --expected-standby green
"""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.http_chaos_controller import HttpChaosController  # noqa: E402
from core.verification_harness import FailoverVerificationHarness, HarnessSettings  # noqa: E402


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Verify blue/green failover through the proxy.")
    parser.add_argument("--target-url", required=True, help="Proxy URL to send requests to")
    parser.add_argument("--chaos-url", required=True, help="Direct URL of the primary backend")
    parser.add_argument("--expected-primary", required=True, help="Pool identity of the primary")
    parser.add_argument("--expected-standby", default=None, help="Pool identity of the standby")
    parser.add_argument("--request-count", type=int, default=15)
    parser.add_argument("--min-standby-fraction", type=float, default=0.95)
    parser.add_argument("--poll-timeout", type=float, default=10.0)
    parser.add_argument("--poll-interval", type=float, default=0.5)
    parser.add_argument("--chaos-mode", choices=["error", "timeout"], default="error")
    parser.add_argument("--verify-recovery", action="store_true",
                        help="Wait for the primary to serve again after chaos stops")
    parser.add_argument("--recovery-timeout", type=float, default=None)
    parser.add_argument("--pool-header", default="X-App-Pool",
                        help="Response header carrying the serving pool's name")
    parser.add_argument("--release-header", default="X-Release-Id",
                        help="Response header carrying the serving release")
    return parser.parse_args(argv)


def build_settings(args) -> HarnessSettings:
    return HarnessSettings(
        target_url=args.target_url,
        expected_primary=args.expected_primary,
        expected_standby=args.expected_standby,
        request_count=args.request_count,
        min_standby_fraction=args.min_standby_fraction,
        poll_timeout=args.poll_timeout,
        poll_interval=args.poll_interval,
        chaos_mode=args.chaos_mode,
        verify_recovery=args.verify_recovery,
        recovery_timeout=args.recovery_timeout,
        pool_header=args.pool_header,
        release_header=args.release_header,
    )


async def main(argv=None) -> int:
    args = parse_args(argv)
    settings = build_settings(args)
    harness = FailoverVerificationHarness(settings, HttpChaosController(args.chaos_url))
    report = await harness.run()
    print(report.summary())
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
