"""
read_load.py - simple async load script against the redirect entry point

Usage:
  python read_load.py --base http://127.0.0.1:8000 --host localhost:8000 --in seeded_slugs.jsonl --count 15000 --concurrency 200
"""
import argparse
import asyncio
import json
import random
import time
from datetime import datetime, timezone

import httpx


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _load_slugs(path):
    slugs = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            slug = json.loads(line).get("slug")
            if slug:
                slugs.append(slug)
    return slugs


async def _hit_one(client: httpx.AsyncClient, base: str, host: str, slug: str):
    try:
        r = await client.get(
            f"{base}/api/internal/redirect/{slug}",
            headers={"x-original-host": host},
            follow_redirects=False,
            timeout=10,
        )
        # 301 for redirects, 2xx for cloaked links
        return 200 <= r.status_code < 400 and "error=" not in r.headers.get("location", "")
    except httpx.HTTPError:
        return False


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--base", default="http://127.0.0.1:8000")
    parser.add_argument("--host", default="localhost:8000", help="value sent as x-original-host")
    parser.add_argument("--in", dest="slugs_file", default="seeded_slugs.jsonl")
    parser.add_argument("--count", type=int, default=15000)
    parser.add_argument("--concurrency", type=int, default=200)
    args = parser.parse_args()

    slugs = _load_slugs(args.slugs_file)
    if not slugs:
        print(f"No slugs found in {args.slugs_file}. Run seed_links.py first.")
        return

    start_iso = _now_iso()
    t0 = time.perf_counter()
    success = 0

    limit = httpx.Limits(max_connections=args.concurrency, max_keepalive_connections=args.concurrency)
    async with httpx.AsyncClient(limits=limit) as client:
        sem = asyncio.Semaphore(args.concurrency)

        async def _task(i):
            nonlocal success
            async with sem:
                ok = await _hit_one(client, args.base, args.host, random.choice(slugs))
                if ok:
                    success += 1

        await asyncio.gather(*(_task(i) for i in range(args.count)))

    dt = time.perf_counter() - t0
    print(f"START: {start_iso}")
    print(f"END:   {_now_iso()}")
    print(f"TOTAL: {dt:.3f} s")
    print(f"OPS:   reads={args.count}, ok={success}, fail={args.count - success}")
    if dt > 0:
        print(f"RPS:   {success/dt:.1f} req/s")


if __name__ == "__main__":
    asyncio.run(main())
