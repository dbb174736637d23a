#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Find unused addresses matching a fixed-length wildcard pattern.

  find-available 'exampl?.com'
  find-available --workers 4 'ab??.io'

Every '?' in the pattern is replaced by a-z; each resulting candidate is
checked by a fast HTTP reachability probe and, when nothing answers, by a
WHOIS lookup. Candidates with no WHOIS record are reported as found.

Features:
- Odometer enumeration (leftmost wildcard most significant), streaming
- Candidates dealt round-robin to N workers in batches of 10
- Each worker runs up to 8 checks concurrently (asyncio + aiohttp)
- Per-candidate failures are recorded, never retried, never fatal
- Live progress: one line per worker rewritten in place
- Sorted column output for found / failed addresses, optional CSV
- Defaults from environment / .env (python-dotenv)

Install:
  pip install aiohttp python-dotenv
"""

from __future__ import annotations

import argparse
import asyncio
import collections
import csv
import enum
import logging
import math
import os
import re
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Sequence, TextIO

import aiohttp
from dotenv import load_dotenv

ALPHABET_FIRST = "a"
ALPHABET_LAST = "z"
ALPHABET_SIZE = 26

DEFAULT_WILDCARD = "?"
DEFAULT_WORKERS = 10
DEFAULT_CONCURRENCY = 8
DEFAULT_BATCH_SIZE = 10
DEFAULT_TICK_S = 0.25
DEFAULT_TIMEOUT_S = 5.0
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; find_available/1.0)"

BAR_WIDTH = 16
FULL_BLOCK = "█"
# index i -> block filled i/8 from the left
EIGHTHS = [""] + [chr(ord(FULL_BLOCK) + i) for i in range(7, 0, -1)]

IANA_WHOIS_SERVER = "whois.iana.org"
WHOIS_PORT = 43

RE_NO_MATCH = re.compile(
    r"(no match|not found|no data found|no entries found|domain not found|"
    r"status:\s*free|the domain has not been registered)",
    re.IGNORECASE,
)
RE_REFER = re.compile(r"^\s*(?:refer|whois):\s*(\S+)", re.IGNORECASE | re.MULTILINE)

log = logging.getLogger("find_available")


# ---------------------------
# String helpers
# ---------------------------

def replace_at(text: str, index: int, sub: str) -> str:
    return text[:index] + sub + text[index + 1:]


def increment_char(text: str, index: int) -> str:
    return replace_at(text, index, chr(ord(text[index]) + 1))


def repeat(text: str, n: int) -> str:
    return text * max(n, 0)


# ---------------------------
# Pattern enumeration
# ---------------------------

class PatternEnumerator:
    """
    Odometer over the wildcard positions of a pattern.

    The rightmost wildcard moves fastest; 'z' wraps to 'a' and carries left.
    A carry past the leftmost wildcard exhausts the enumerator for good.
    A pattern without wildcards yields itself once.
    """

    def __init__(self, pattern: str, wildcard: str = DEFAULT_WILDCARD):
        self.pattern = pattern
        self.wildcard = wildcard
        self._indexes = [i for i, ch in enumerate(pattern) if ch == wildcard]
        self._cursor: Optional[str] = pattern
        for i in self._indexes:
            self._cursor = replace_at(self._cursor, i, ALPHABET_FIRST)

    @property
    def wildcard_indexes(self) -> List[int]:
        return list(self._indexes)

    @property
    def total(self) -> int:
        return ALPHABET_SIZE ** len(self._indexes)

    def is_exhausted(self) -> bool:
        return self._cursor is None

    def generate(self, number: Optional[int] = None) -> List[str]:
        out: List[str] = []
        while self._cursor is not None and (number is None or len(out) < number):
            out.append(self._cursor)
            self._advance()
        return out

    def _advance(self) -> None:
        assert self._cursor is not None
        address = self._cursor
        pos = len(self._indexes) - 1
        while pos >= 0 and address[self._indexes[pos]] == ALPHABET_LAST:
            address = replace_at(address, self._indexes[pos], ALPHABET_FIRST)
            pos -= 1
        if pos < 0:
            self._cursor = None
        else:
            self._cursor = increment_char(address, self._indexes[pos])


# ---------------------------
# Existence probes
# ---------------------------

class Outcome(enum.Enum):
    EXISTS = "exists"
    AVAILABLE = "available"
    FAILURE = "failure"


class ProbeError(RuntimeError):
    pass


class WhoisError(ProbeError):
    pass


class HttpProbe:
    """Reachability probe: any HTTP answer at all means the name is in use."""

    def __init__(self, session: aiohttp.ClientSession, timeout_s: float = DEFAULT_TIMEOUT_S):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def is_alive(self, address: str) -> bool:
        url = f"http://{address}/"
        try:
            async with self.session.head(url, timeout=self.timeout, allow_redirects=False):
                return True
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False


class WhoisClient:
    """
    Plain port-43 WHOIS over asyncio streams.

    Without a fixed server, the authoritative server for each TLD is asked
    from IANA once and cached.
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        server: Optional[str] = None,
        port: int = WHOIS_PORT,
        iana_server: str = IANA_WHOIS_SERVER,
    ):
        self.timeout_s = timeout_s
        self.server = server
        self.port = port
        self.iana_server = iana_server
        self._servers: Dict[str, str] = {}
        self._referral_errors: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def query(self, host: str, text: str) -> str:
        try:
            return await asyncio.wait_for(self._exchange(host, text), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise WhoisError(f"{host}: timeout after {self.timeout_s}s") from e
        except OSError as e:
            raise WhoisError(f"{host}: {e}") from e

    async def _exchange(self, host: str, text: str) -> str:
        reader, writer = await asyncio.open_connection(host, self.port)
        try:
            writer.write((text + "\r\n").encode("utf-8", errors="ignore"))
            await writer.drain()
            data = await reader.read()
        finally:
            writer.close()
        return data.decode("utf-8", errors="replace")

    async def server_for(self, domain: str) -> str:
        if self.server:
            return self.server
        tld = domain.rstrip(".").rsplit(".", 1)[-1].lower()
        async with self._lock:
            # failed referrals are cached too, never re-queried
            if tld in self._referral_errors:
                raise WhoisError(self._referral_errors[tld])
            if tld not in self._servers:
                try:
                    m = RE_REFER.search(await self.query(self.iana_server, tld))
                except WhoisError as e:
                    self._referral_errors[tld] = f"referral for .{tld} failed: {e}"
                    raise
                if not m:
                    self._referral_errors[tld] = f"no WHOIS server known for .{tld}"
                    raise WhoisError(self._referral_errors[tld])
                self._servers[tld] = m.group(1)
                log.info("WHOIS server for .%s: %s", tld, self._servers[tld])
        return self._servers[tld]

    async def has_record(self, domain: str) -> bool:
        host = await self.server_for(domain)
        text = await self.query(host, domain)
        if not text.strip():
            raise WhoisError(f"{host}: empty response for {domain}")
        return RE_NO_MATCH.search(text) is None


class DomainProbe:
    """EXISTS if the host answers or WHOIS has a record, else AVAILABLE. Errors propagate."""

    def __init__(self, http: HttpProbe, whois: WhoisClient):
        self.http = http
        self.whois = whois

    async def check(self, address: str) -> Outcome:
        if await self.http.is_alive(address):
            return Outcome.EXISTS
        if await self.whois.has_record(address):
            return Outcome.EXISTS
        return Outcome.AVAILABLE


# ---------------------------
# Checker + worker pool
# ---------------------------

def loading_bar(ratio: float, width: int = BAR_WIDTH) -> str:
    cells = width - 2
    total = cells * 8
    current = math.floor(total * ratio + 0.5)
    body = repeat(FULL_BLOCK, current // 8) + EIGHTHS[current % 8]
    return "[" + body.ljust(cells) + "]"


class Checker:
    """
    One worker: a queue of candidates drained by up to `concurrency` tasks.

    Built loaded-but-paused; nothing runs before start(), so the total is
    known up front.
    """

    def __init__(self, probe, concurrency: int = DEFAULT_CONCURRENCY, label_width: int = 0):
        self.probe = probe
        self.concurrency = concurrency
        self.label_width = label_width

        self.assigned: List[str] = []
        self.last_checked: Optional[str] = None
        self.found: List[str] = []
        self.failed: List[str] = []
        self.existing = 0
        self.stopped = True

        self._pending: Deque[str] = collections.deque()
        self._total = 0
        self._started = False
        self._done: Optional[asyncio.Event] = None
        self._supervisor: Optional[asyncio.Task] = None

    @property
    def total(self) -> int:
        return self._total if self._started else len(self._pending)

    @property
    def remaining(self) -> int:
        return len(self._pending)

    @property
    def completed(self) -> int:
        return len(self.found) + len(self.failed) + self.existing

    def load(self, addresses: Iterable[str]) -> None:
        if self._started:
            raise RuntimeError("checker already started")
        for address in addresses:
            self.assigned.append(address)
            self._pending.append(address)

    def start(self) -> None:
        if self._started:
            raise RuntimeError("checker already started")
        self._started = True
        self._total = len(self._pending)
        self._done = asyncio.Event()
        self.stopped = False

        workers = [
            asyncio.create_task(self._worker_loop())
            for _ in range(min(self.concurrency, self._total))
        ]
        self._supervisor = asyncio.create_task(self._supervise(workers))

    async def wait(self) -> None:
        if self._done is None:
            raise RuntimeError("checker not started")
        await self._done.wait()

    async def _supervise(self, workers: List[asyncio.Task]) -> None:
        try:
            await asyncio.gather(*workers)
        finally:
            self.stopped = True
            assert self._done is not None
            self._done.set()

    async def _worker_loop(self) -> None:
        while self._pending:
            await self._check_one(self._pending.popleft())

    async def _check_one(self, address: str) -> None:
        try:
            outcome = await self.probe.check(address)
        except Exception as e:
            log.debug("Check failed for %s: %s: %s", address, type(e).__name__, e)
            outcome = Outcome.FAILURE

        if outcome is Outcome.AVAILABLE:
            self.found.append(address)
        elif outcome is Outcome.FAILURE:
            self.failed.append(address)
        else:
            self.existing += 1
        self.last_checked = address

    def progress(self) -> float:
        total = self.total
        if total == 0:
            return 1.0
        return (total - self.remaining) / total

    def get_info(self) -> str:
        address = self.last_checked or "-"
        ratio = self.progress()

        loading = f"{loading_bar(ratio, BAR_WIDTH)} {math.floor(ratio * 100)}%"
        found = f" found: {len(self.found)}" if self.found else ""
        failed = f" failed: {len(self.failed)}" if self.failed else ""

        return address.ljust(self.label_width + 2) + loading + found + failed


class WorkerPool:
    """Deals the enumerator's output round-robin, batch by batch, to a fixed set of checkers."""

    def __init__(
        self,
        enumerator: PatternEnumerator,
        probe,
        workers: int = DEFAULT_WORKERS,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        label_width: int = 0,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.checkers = [Checker(probe, concurrency, label_width) for _ in range(workers)]
        self.assigned = 0
        self._distribute(enumerator, batch_size)

    def _distribute(self, enumerator: PatternEnumerator, batch_size: int) -> None:
        index = 0
        while not enumerator.is_exhausted():
            batch = enumerator.generate(batch_size)
            self.checkers[index].load(batch)
            self.assigned += len(batch)
            index = (index + 1) % len(self.checkers)
        log.info("Distributed %s candidates across %s workers", self.assigned, len(self.checkers))

    @property
    def stopped(self) -> bool:
        return all(c.stopped for c in self.checkers)

    def start(self) -> None:
        for checker in self.checkers:
            checker.start()

    async def wait(self) -> None:
        await asyncio.gather(*(c.wait() for c in self.checkers))

    def found(self) -> List[str]:
        return sorted(a for c in self.checkers for a in c.found)

    def failed(self) -> List[str]:
        return sorted(a for c in self.checkers for a in c.failed)


# ---------------------------
# Live progress
# ---------------------------

class ProgressAggregator:
    """
    Reserves one line per checker under the current output and rewrites
    those lines in place on every tick. Renders never overlap.
    """

    def __init__(self, checkers: Sequence[Checker], interval: float = DEFAULT_TICK_S,
                 stream: Optional[TextIO] = None):
        self.checkers = list(checkers)
        self.interval = interval
        self.stream = stream if stream is not None else sys.stdout
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self.stream.write("\n" * len(self.checkers))
        self.stream.flush()
        self._task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                log.debug("Progress tick stopped early: %s: %s", type(e).__name__, e)
            self._task = None
        # waits out a render already in flight
        async with self._lock:
            self.render()

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            async with self._lock:
                self.render()

    def render(self) -> None:
        for index, checker in enumerate(self.checkers):
            self._write_line(index, f"#{str(index).ljust(4)}{checker.get_info()}")
        self.stream.flush()

    def _write_line(self, index: int, text: str) -> None:
        up = len(self.checkers) - index
        self.stream.write(f"\x1b[{up}A\r\x1b[2K{text}\x1b[{up}B\r")


# ---------------------------
# Results
# ---------------------------

def format_columns(addresses: Sequence[str], label_width: int, width: int) -> List[str]:
    columns = max(1, (width + 1) // (label_width + 1))
    return [" ".join(addresses[i:i + columns]) for i in range(0, len(addresses), columns)]


class ResultCollector:
    def __init__(self, pool: WorkerPool, label_width: int, stream: Optional[TextIO] = None,
                 poll_interval: Optional[float] = None):
        self.pool = pool
        self.label_width = label_width
        self.stream = stream if stream is not None else sys.stdout
        self.poll_interval = poll_interval

    async def wait(self) -> None:
        """Block until every checker has stopped. Call only after pool.start()."""
        if self.poll_interval is None:
            await self.pool.wait()
            return
        while not self.pool.stopped:
            await asyncio.sleep(self.poll_interval)

    def report(self, width: Optional[int] = None) -> None:
        if width is None:
            width = shutil.get_terminal_size().columns
        self.stream.write("\r")
        self.stream.write("Found addresses:\n")
        self._write_block(self.pool.found(), width)
        self.stream.write("Failed to check:\n")
        self._write_block(self.pool.failed(), width)
        self.stream.flush()

    def _write_block(self, addresses: Sequence[str], width: int) -> None:
        rows = format_columns(addresses, self.label_width, width)
        if not rows:
            self.stream.write("\n")
        for row in rows:
            self.stream.write(row + "\n")

    def write_csv(self, path: Path) -> int:
        rows = [{"domain": a, "status": "available"} for a in self.pool.found()]
        rows += [{"domain": a, "status": "failed"} for a in self.pool.failed()]
        rows.sort(key=lambda r: r["domain"])

        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            w = csv.DictWriter(f, fieldnames=["domain", "status"])
            w.writeheader()
            w.writerows(rows)
        return len(rows)


# ---------------------------
# Config / logging
# ---------------------------

@dataclass
class ScanConfig:
    pattern: str
    wildcard: str = DEFAULT_WILDCARD
    workers: int = DEFAULT_WORKERS
    concurrency: int = DEFAULT_CONCURRENCY
    batch_size: int = DEFAULT_BATCH_SIZE
    interval: float = DEFAULT_TICK_S
    poll_interval: Optional[float] = None
    timeout_s: float = DEFAULT_TIMEOUT_S
    whois_server: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    csv_path: Optional[Path] = None

    @property
    def label_width(self) -> int:
        return len(self.pattern)


def configure_logging(verbosity: int, log_file: Optional[str] = None) -> logging.Logger:
    # WARNING by default: records on stderr would tear the progress region
    level = logging.WARNING
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        filename=log_file,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return log


def load_env(dotenv_path: Optional[str]) -> None:
    load_dotenv(dotenv_path=dotenv_path, override=False)


def env_value(var: str, cast, default):
    raw = os.getenv(var, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"invalid {var}={raw!r}: {e}") from e


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    """CLI flags win over environment, environment wins over built-in defaults."""
    workers = args.workers if args.workers is not None else \
        env_value("FIND_AVAILABLE_WORKERS", int, DEFAULT_WORKERS)
    timeout_s = args.timeout_s if args.timeout_s is not None else \
        env_value("FIND_AVAILABLE_TIMEOUT_S", float, DEFAULT_TIMEOUT_S)
    whois_server = args.whois_server or os.getenv("FIND_AVAILABLE_WHOIS_SERVER", "").strip() or None

    if workers < 1:
        raise ValueError("--workers must be >= 1")
    if args.concurrency < 1:
        raise ValueError("--concurrency must be >= 1")
    if args.batch_size < 1:
        raise ValueError("--batch-size must be >= 1")
    if len(args.wildcard) != 1:
        raise ValueError("--wildcard must be a single character")
    if args.interval <= 0 or timeout_s <= 0:
        raise ValueError("--interval and --timeout-s must be > 0")
    if args.poll_interval is not None and args.poll_interval <= 0:
        raise ValueError("--poll-interval must be > 0")

    return ScanConfig(
        pattern=args.pattern,
        wildcard=args.wildcard,
        workers=workers,
        concurrency=args.concurrency,
        batch_size=args.batch_size,
        interval=args.interval,
        poll_interval=args.poll_interval,
        timeout_s=timeout_s,
        whois_server=whois_server,
        user_agent=args.user_agent,
        csv_path=Path(args.csv) if args.csv else None,
    )


# ---------------------------
# Main
# ---------------------------

async def main_async(config: ScanConfig) -> int:
    print(f"Checking addresses matching pattern '{config.pattern}':", flush=True)

    enumerator = PatternEnumerator(config.pattern, config.wildcard)
    log.info("Pattern %r expands to %s candidates", config.pattern, enumerator.total)

    timeout = aiohttp.ClientTimeout(total=None)  # per-request timeout set by HttpProbe
    headers = {"User-Agent": config.user_agent}
    connector = aiohttp.TCPConnector(limit=0)

    async with aiohttp.ClientSession(timeout=timeout, headers=headers, connector=connector) as session:
        probe = DomainProbe(
            HttpProbe(session, config.timeout_s),
            WhoisClient(config.timeout_s, server=config.whois_server),
        )
        pool = WorkerPool(
            enumerator,
            probe,
            workers=config.workers,
            concurrency=config.concurrency,
            batch_size=config.batch_size,
            label_width=config.label_width,
        )
        progress = ProgressAggregator(pool.checkers, interval=config.interval)
        collector = ResultCollector(pool, config.label_width, poll_interval=config.poll_interval)

        progress.start()
        pool.start()
        try:
            await collector.wait()
        finally:
            await progress.stop()

    collector.report()
    if config.csv_path is not None:
        n = collector.write_csv(config.csv_path)
        log.info("Wrote %s rows to %s", n, config.csv_path)

    log.info("Done. found=%s failed=%s", len(pool.found()), len(pool.failed()))
    sys.stdout.flush()
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        "find-available",
        description="Check which addresses matching a wildcard pattern are not in use.",
        epilog="pattern could be only with fixed length (ex. exampl?.com)",
    )
    p.add_argument("pattern", help="Fixed-length pattern; each wildcard stands for one letter a-z")
    p.add_argument("--workers", type=int, default=None,
                   help=f"Parallel workers (default: $FIND_AVAILABLE_WORKERS or {DEFAULT_WORKERS})")
    p.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY,
                   help=f"Checks in flight per worker (default: {DEFAULT_CONCURRENCY})")
    p.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE,
                   help=f"Candidates dealt to a worker at a time (default: {DEFAULT_BATCH_SIZE})")
    p.add_argument("--wildcard", default=DEFAULT_WILDCARD, help=f"Wildcard marker (default: {DEFAULT_WILDCARD})")
    p.add_argument("--interval", type=float, default=DEFAULT_TICK_S,
                   help=f"Progress refresh in seconds (default: {DEFAULT_TICK_S})")
    p.add_argument("--poll-interval", type=float, default=None,
                   help="Detect completion by polling every N seconds instead of waiting on workers")
    p.add_argument("--timeout-s", type=float, default=None,
                   help=f"Probe timeout (default: $FIND_AVAILABLE_TIMEOUT_S or {DEFAULT_TIMEOUT_S})")
    p.add_argument("--whois-server", default=None,
                   help="Fixed WHOIS server (default: $FIND_AVAILABLE_WHOIS_SERVER or IANA referral)")
    p.add_argument("--user-agent", default=DEFAULT_USER_AGENT)
    p.add_argument("--csv", default=None, help="Also write results to this CSV file")
    p.add_argument("--dotenv", default=None, help="Path to .env file (default: ./.env if present)")
    p.add_argument("--log-file", default=None, help="Write log records here instead of stderr")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-vv for debug)")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose, args.log_file)
    load_env(args.dotenv)

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    return asyncio.run(main_async(config))


def cli() -> None:
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130)


if __name__ == "__main__":
    cli()
