"""
Tests for the program-log swap monitor.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from solarb.feeds.swap_monitor import SwapEventMonitor


def notification(subscription, err=None):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "logsNotification",
        "params": {
            "subscription": subscription,
            "result": {"value": {"signature": "abc", "err": err, "logs": []}},
        },
    })


@pytest.fixture
def signals():
    return []


@pytest_asyncio.fixture
async def monitor(signals):
    monitor = SwapEventMonitor(signals.append, rpc_url="https://rpc.example.com/?api-key=secret")
    ws = MagicMock()
    ws.send = AsyncMock()
    await monitor._subscribe(ws)
    # Confirm the Raydium CLMM (id 2) and Orca (id 3) subscriptions
    monitor.handle_message(json.dumps({"jsonrpc": "2.0", "id": 2, "result": 7001}))
    monitor.handle_message(json.dumps({"jsonrpc": "2.0", "id": 3, "result": 7002}))
    return monitor


class TestSwapEventMonitor:

    def test_ws_url(self):
        assert SwapEventMonitor.to_ws_url("https://mainnet.helius-rpc.com/?api-key=x") == \
            "wss://mainnet.helius-rpc.com/?api-key=x"
        assert SwapEventMonitor.to_ws_url("http://localhost:8899") == "ws://localhost:8899"

    def test_venue_for(self):
        assert SwapEventMonitor.venue_for("Raydium CLMM") == "Raydium"
        assert SwapEventMonitor.venue_for("Orca") == "Orca"

    @pytest.mark.asyncio
    async def test_subscribes_to_every_program(self):
        monitor = SwapEventMonitor(lambda venue: None, rpc_url="https://rpc.example.com")
        ws = MagicMock()
        ws.send = AsyncMock()

        await monitor._subscribe(ws)

        assert ws.send.await_count == len(SwapEventMonitor.DEX_PROGRAMS)
        first = json.loads(ws.send.await_args_list[0].args[0])
        assert first["method"] == "logsSubscribe"
        assert first["params"][0] == {"mentions": [SwapEventMonitor.DEX_PROGRAMS["Raydium AMM"]]}

    @pytest.mark.asyncio
    async def test_successful_swap_signals_venue(self, monitor, signals):
        assert monitor.handle_message(notification(7001)) == "Raydium CLMM"
        assert monitor.handle_message(notification(7002)) == "Orca"

        assert signals == ["Raydium", "Orca"]
        assert monitor.get_stats()["swap_events"] == 2

    @pytest.mark.asyncio
    async def test_failed_transaction_ignored(self, monitor, signals):
        assert monitor.handle_message(notification(7001, err={"InstructionError": [0, "Custom"]})) is None

        assert signals == []
        assert monitor.get_stats()["failed_tx_events"] == 1

    @pytest.mark.asyncio
    async def test_garbage_and_other_methods_ignored(self, monitor, signals):
        assert monitor.handle_message("not json") is None
        assert monitor.handle_message(json.dumps({"method": "slotNotification"})) is None
        assert monitor.handle_message("[1, 2, 3]") is None
        assert monitor.handle_message("42") is None

        assert signals == []

    @pytest.mark.asyncio
    async def test_handler_errors_contained(self):
        def explode(venue):
            raise RuntimeError("scheduler gone")

        monitor = SwapEventMonitor(explode, rpc_url="https://rpc.example.com")

        assert monitor.handle_message(notification(1)) == "unknown"

    @pytest.mark.asyncio
    async def test_poll_only_without_url(self):
        monitor = SwapEventMonitor(lambda venue: None, rpc_url="")

        assert not monitor.enabled
        await monitor.start()
        await monitor.stop()

        assert not monitor.is_connected
