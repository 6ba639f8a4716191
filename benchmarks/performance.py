"""
Performance benchmarks for SuperLimit.

Measures throughput and latency of exec against a real Redis.

Run with:
    REDIS_URL=redis://localhost:6379 python benchmarks/performance.py
"""

import asyncio
import os
import statistics
import time
import uuid
from typing import Any, Dict

from superlimit import Limiter, LimitExceeded


class PerformanceBenchmark:
    """Performance testing for the limiter."""

    def __init__(self, redis_url: str = "redis://localhost:6379"):
        self.redis_url = redis_url
        self.results: Dict[str, Any] = {}

    async def setup(self):
        """Setup benchmark environment."""
        # Unique prefix so repeated runs don't share buckets
        prefix = f"bench:{str(uuid.uuid4())[:8]}:"
        self.limiter = Limiter.from_url(self.redis_url, key_prefix=prefix, ttl=60, max=100000)
        if not await self.limiter.health_check():
            raise SystemExit(f"Redis not reachable at {self.redis_url}")
        print("Connected to Redis")
        print("Starting performance benchmarks...\n")

    async def teardown(self):
        """Cleanup after benchmarks."""
        await self.limiter.close()
        print("\nBenchmarks completed")

    async def benchmark_throughput(self, requests: int = 10000):
        """Test maximum throughput."""
        print(f"Throughput Test ({requests} requests)")
        print("-" * 50)

        start = time.perf_counter()
        for i in range(requests):
            await self.limiter.exec(f"throughput:seq:{i}")
        seq_time = time.perf_counter() - start
        seq_throughput = requests / seq_time

        print(f"Sequential: {seq_throughput:.1f} req/s ({seq_time:.2f}s total)")

        start = time.perf_counter()
        await asyncio.gather(*(self.limiter.exec(f"throughput:con:{i}") for i in range(requests)))
        con_time = time.perf_counter() - start
        con_throughput = requests / con_time

        print(f"Concurrent: {con_throughput:.1f} req/s ({con_time:.2f}s total)")
        print(f"Speedup: {con_throughput / seq_throughput:.2f}x\n")

        self.results["throughput"] = {
            "sequential": seq_throughput,
            "concurrent": con_throughput,
        }

    async def benchmark_latency(self, samples: int = 1000):
        """Test per-call latency on a single hot bucket."""
        print(f"Latency Test ({samples} samples)")
        print("-" * 50)

        latencies = []
        for _ in range(samples):
            start = time.perf_counter()
            await self.limiter.exec("latency:hot")
            latencies.append((time.perf_counter() - start) * 1000)

        latencies.sort()
        p50 = statistics.median(latencies)
        p99 = latencies[int(len(latencies) * 0.99) - 1]

        print(f"Mean: {statistics.mean(latencies):.3f}ms")
        print(f"P50:  {p50:.3f}ms")
        print(f"P99:  {p99:.3f}ms\n")

        self.results["latency"] = {"p50": p50, "p99": p99}

    async def benchmark_contention(self, requests: int = 2000, max_count: int = 500):
        """Concurrent calls on one bucket must allow exactly max_count."""
        print(f"Contention Test ({requests} calls, max {max_count})")
        print("-" * 50)

        limiter = Limiter(
            self.limiter.backend,
            key_prefix=self.limiter.key_prefix,
            ttl=60,
            max=max_count,
        )

        async def call():
            try:
                await limiter.exec("contention")
                return True
            except LimitExceeded:
                return False

        results = await asyncio.gather(*(call() for _ in range(requests)))
        allowed = sum(results)

        print(f"Allowed: {allowed} (expected {max_count})\n")
        self.results["contention"] = {"allowed": allowed, "expected": max_count}

    async def run(self):
        await self.setup()
        try:
            await self.benchmark_throughput()
            await self.benchmark_latency()
            await self.benchmark_contention()
        finally:
            await self.teardown()


if __name__ == "__main__":
    benchmark = PerformanceBenchmark(os.getenv("REDIS_URL", "redis://localhost:6379"))
    asyncio.run(benchmark.run())
