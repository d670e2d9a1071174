from __future__ import annotations

import asyncio
import math
from functools import partial

from pythonping import ping

from soboss.core.logging import get_logger


class ReachabilityProbe:
    """
    One reachability test per call. Implementations report failures as
    False instead of raising.
    """

    async def check(self, host: str, timeout_ms: int) -> bool:
        raise NotImplementedError


class IcmpProbe(ReachabilityProbe):
    """
    Single ICMP echo via pythonping (raw socket, needs CAP_NET_RAW or root).
    """

    def __init__(self, *, count: int = 1) -> None:
        self._count = max(1, int(count))
        self._log = get_logger(component="ping", method="icmp")

    async def check(self, host: str, timeout_ms: int) -> bool:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(self._check_blocking, host, timeout_ms))
        except Exception as e:
            self._log.debug("probe_error", host=host, error="%s: %s" % (type(e).__name__, e))
            return False

    def _check_blocking(self, host: str, timeout_ms: int) -> bool:
        responses = ping(host, count=self._count, timeout=max(0.1, timeout_ms / 1000.0))
        return any(getattr(r, "success", False) for r in responses)


class SystemPingProbe(ReachabilityProbe):
    """
    Shells out to the system `ping` binary (works unprivileged).
    """

    def __init__(self, *, binary: str = "ping") -> None:
        self._binary = binary
        self._log = get_logger(component="ping", method="system")

    async def check(self, host: str, timeout_ms: int) -> bool:
        wait_s = max(1, int(math.ceil(timeout_ms / 1000.0)))
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary,
                "-c",
                "1",
                "-W",
                str(wait_s),
                host,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self._log.warning("probe_spawn_failed", host=host, error=str(e))
            return False

        try:
            code = await asyncio.wait_for(proc.wait(), timeout=wait_s + 1.0)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return False
        except asyncio.CancelledError:
            proc.kill()
            raise
        return code == 0


def make_probe(method: str) -> ReachabilityProbe:
    m = (method or "").strip().lower()
    if m == "icmp":
        return IcmpProbe()
    if m == "system":
        return SystemPingProbe()
    raise ValueError("unknown ping method: %r" % method)
