#!/usr/bin/env python3
"""Summarize a proxy access log (one JSON record per line).

Prints request and failover counts, the status distribution, which backend
served requests, and per-backend attempt outcomes. Unparseable lines are
counted and skipped.
"""

import argparse
import json
from collections import Counter, defaultdict


def summarize(path):
    summary = {
        "requests": 0,
        "retried": 0,
        "exhausted": 0,
        "bad_lines": 0,
        "status": Counter(),
        "served_by": Counter(),
        "outcomes": defaultdict(Counter),
    }
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                summary["bad_lines"] += 1
                continue
            summary["requests"] += 1
            summary["status"][record.get("status")] += 1
            summary["served_by"][record.get("pool") or record.get("served_by") or "-"] += 1
            addrs = record.get("upstream_addr") or []
            if len(addrs) > 1:
                summary["retried"] += 1
            if record.get("served_by") is None:
                summary["exhausted"] += 1
            for addr, outcome in zip(addrs, record.get("upstream_outcome") or []):
                summary["outcomes"][addr][outcome] += 1
    return summary


def print_summary(summary):
    print(f"requests: {summary['requests']}")
    print(f"retried: {summary['retried']}")
    print(f"exhausted (502): {summary['exhausted']}")
    if summary["bad_lines"]:
        print(f"unparseable lines: {summary['bad_lines']}")
    print("status:")
    for status, count in sorted(summary["status"].items(), key=lambda kv: str(kv[0])):
        print(f"  {status}: {count}")
    print("served by:")
    for pool, count in summary["served_by"].most_common():
        print(f"  {pool}: {count}")
    print("attempt outcomes:")
    for addr, outcomes in sorted(summary["outcomes"].items()):
        detail = ", ".join(f"{k}={v}" for k, v in outcomes.most_common())
        print(f"  {addr}: {detail}")


def main():
    parser = argparse.ArgumentParser(description="Summarize a proxy access log.")
    parser.add_argument("path", nargs="?", default="logs/access.log")
    args = parser.parse_args()
    print_summary(summarize(args.path))


if __name__ == "__main__":
    main()
