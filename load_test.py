"""
Claim race load test.

Fires many concurrent POST /api/claim requests at a single order identifier on
a running instance and reports how many succeeded.  For a one-time-use order
exactly one request must succeed; for a multi-use order every request should,
and the final claim_count must equal the number of successes.

Run the server with RATE_LIMIT_ENABLED=false, otherwise most requests get 429.
"""
import argparse
import asyncio
import json
import statistics
import time
from collections import defaultdict
from datetime import datetime

import aiohttp


class ClaimRaceTester:
    def __init__(self, base_url="http://localhost:8000", order_id="DEMO-ONE-TIME", total_requests=200, concurrent_workers=50):
        self.base_url = base_url
        self.order_id = order_id
        self.total_requests = total_requests
        self.concurrent_workers = concurrent_workers
        self.results = {
            "successful": 0,
            "rejected": 0,
            "errors": defaultdict(int),
            "status_codes": defaultdict(int),
            "messages": defaultdict(int),
            "claim_counts": [],
            "response_times": [],
        }

    async def claim(self, session, gate):
        url = f"{self.base_url}/api/claim"
        async with gate:
            start_time = time.time()
            try:
                async with session.post(url, json={"orderId": self.order_id}, timeout=aiohttp.ClientTimeout(total=30)) as response:
                    body = await response.json(content_type=None)
                    self.results["response_times"].append(time.time() - start_time)
                    self.results["status_codes"][response.status] += 1
                    self.results["messages"][body.get("message", "")] += 1
                    if body.get("success"):
                        self.results["successful"] += 1
                        self.results["claim_counts"].append(body.get("claim_count"))
                    else:
                        self.results["rejected"] += 1
            except asyncio.TimeoutError:
                self.results["errors"]["Timeout"] += 1
            except Exception as e:
                self.results["errors"][type(e).__name__] += 1

    async def run(self):
        print(f"\n{'='*80}")
        print(f"CLAIM RACE: {self.total_requests:,} requests, {self.concurrent_workers} in flight, order {self.order_id}")
        print(f"{'='*80}\n")

        gate = asyncio.Semaphore(self.concurrent_workers)
        connector = aiohttp.TCPConnector(limit=self.concurrent_workers, limit_per_host=self.concurrent_workers)
        start_time = time.time()
        async with aiohttp.ClientSession(connector=connector) as session:
            await asyncio.gather(*(self.claim(session, gate) for _ in range(self.total_requests)))
        self.print_results(time.time() - start_time)

    def print_results(self, total_time):
        counts = sorted(c for c in self.results["claim_counts"] if c is not None)
        print("SUMMARY:")
        print(f"  Total Time: {total_time:.2f} seconds")
        print(f"  Successful claims: {self.results['successful']:,}")
        print(f"  Rejected claims: {self.results['rejected']:,}")
        if counts:
            duplicates = len(counts) - len(set(counts))
            print(f"  Highest claim_count seen: {counts[-1]}")
            # every success must have observed a distinct post-increment count
            print(f"  Duplicate claim_count values: {duplicates}")

        if self.results["response_times"]:
            times = sorted(self.results["response_times"])
            print("\nRESPONSE TIMES (LATENCY):")
            print(f"  Mean: {statistics.mean(times)*1000:.2f} ms")
            print(f"  p50 (Median): {times[int(len(times) * 0.50)]*1000:.2f} ms")
            print(f"  p95: {times[int(len(times) * 0.95)]*1000:.2f} ms")

        print("\nSTATUS CODES:")
        for code, count in sorted(self.results["status_codes"].items()):
            print(f"  {code}: {count:,}")
        print("\nMESSAGES:")
        for message, count in sorted(self.results["messages"].items(), key=lambda x: x[1], reverse=True):
            print(f"  {message}: {count:,}")
        if self.results["errors"]:
            print("\nERRORS:")
            for error, count in self.results["errors"].items():
                print(f"  {error}: {count:,}")

        results_file = f"claim_race_results_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with open(results_file, "w") as f:
            json.dump({
                "order_id": self.order_id,
                "total_time": total_time,
                "successful": self.results["successful"],
                "rejected": self.results["rejected"],
                "claim_counts": counts,
                "status_codes": dict(self.results["status_codes"]),
                "messages": dict(self.results["messages"]),
                "errors": dict(self.results["errors"]),
            }, f, indent=2)
        print(f"\nResults saved to: {results_file}\n")


def parse_args():
    parser = argparse.ArgumentParser(description="Race concurrent claims against one order")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--order-id", default="DEMO-ONE-TIME")
    parser.add_argument("--requests", type=int, default=200)
    parser.add_argument("--concurrency", type=int, default=50)
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    tester = ClaimRaceTester(args.base_url, args.order_id, args.requests, args.concurrency)
    asyncio.run(tester.run())
