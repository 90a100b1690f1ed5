"""Tests for the two-tier reachability probe."""

import asyncio

import pytest

from lanscout.core.exceptions import ScanCancelled
from lanscout.scanner.cancellation import CancellationToken
from lanscout.scanner.reachability import ReachabilityProber

from conftest import FakeTransport


def test_echo_reply_wins():
    transport = FakeTransport(ping={"10.0.0.2": 7})
    result = asyncio.run(ReachabilityProber(transport).probe("10.0.0.2"))

    assert result.reachable
    assert result.latency_ms == 7
    assert transport.connects == []


def test_falls_back_to_tcp_when_echo_is_blocked():
    transport = FakeTransport(open_ports={"10.0.0.3": {3389}})
    result = asyncio.run(ReachabilityProber(transport).probe("10.0.0.3"))

    assert result.reachable
    assert result.latency_ms is not None


def test_unreachable_when_both_tiers_fail():
    transport = FakeTransport()
    result = asyncio.run(ReachabilityProber(transport, fallback_ports=[22, 80]).probe("10.0.0.4"))

    assert not result.reachable
    assert {port for _, port in transport.connects} == {22, 80}


class SlowTransport(FakeTransport):
    """Port 22 answers at once; every other port hangs."""

    def __init__(self):
        super().__init__()
        self.cancelled = []

    async def tcp_connect(self, ip, port, timeout):
        if port == 22:
            return True
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled.append(port)
            raise
        return False


def test_first_success_cancels_remaining_attempts():
    transport = SlowTransport()
    prober = ReachabilityProber(transport, fallback_ports=[80, 22, 443])

    result = asyncio.run(asyncio.wait_for(prober.probe("10.0.0.5"), timeout=5))

    assert result.reachable
    assert sorted(transport.cancelled) == [80, 443]


def test_cancelled_token_stops_probe():
    async def main():
        token = CancellationToken()
        token.cancel()
        await ReachabilityProber(FakeTransport()).probe("10.0.0.6", token)

    with pytest.raises(ScanCancelled):
        asyncio.run(main())
