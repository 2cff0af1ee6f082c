"""
Live swap detection from Solana program logs.

Subscribes to log notifications for the Raydium, Orca and Meteora programs
over the Helius websocket. Each successful transaction touching one of them
becomes a scan signal; the logs themselves are never used as price data.
"""

import asyncio
import json
import re
from typing import Callable, Dict, Optional

import websockets

from solarb.clock import Clock, get_clock
from solarb.config import get_config
from solarb.logger import get_logger


logger = get_logger("swap_monitor")


class SwapEventMonitor:
    """
    Websocket log subscriber feeding the scan scheduler.

    Without a Helius URL the monitor stays idle and the scheduler's
    fallback timer drives every scan (poll-only mode).
    """

    DEX_PROGRAMS: Dict[str, str] = {
        "Raydium AMM": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",
        "Raydium CLMM": "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK",
        "Orca": "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",
        "Meteora": "LBUZKhRxPF3XUpBCjp4YzTKgLLjzvpoVWWoEUH9Q64J",
    }

    RECONNECT_STEP_SECONDS = 5
    RECONNECT_MAX_SECONDS = 60

    def __init__(
        self,
        on_signal: Callable[[str], None],
        rpc_url: Optional[str] = None,
        clock: Optional[Clock] = None,
    ):
        config = get_config()
        self._on_signal = on_signal
        self._clock = clock or get_clock()
        http_url = config.solana.helius_rpc_url if rpc_url is None else rpc_url
        self.ws_url = self.to_ws_url(http_url) if http_url else ""

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._ws = None

        # request id -> program name, then subscription id -> program name
        self._pending: Dict[int, str] = {}
        self._subscriptions: Dict[int, str] = {}

        self._reconnect_attempts = 0
        self._swap_events = 0
        self._failed_tx_events = 0

    @staticmethod
    def to_ws_url(http_url: str) -> str:
        return http_url.replace("https://", "wss://").replace("http://", "ws://")

    @staticmethod
    def venue_for(program_name: str) -> str:
        """'Raydium CLMM' -> 'Raydium'."""
        return program_name.split(" ")[0]

    @property
    def enabled(self) -> bool:
        return bool(self.ws_url)

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    async def start(self) -> None:
        if not self.enabled:
            logger.warning("No HELIUS_RPC_URL set, running in poll-only mode")
            return
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._running = False
        if self._ws is not None:
            await self._ws.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Swap monitor stopped", **self.get_stats())

    async def _run(self) -> None:
        safe_url = re.sub(r"api-key=[^&]+", "api-key=***", self.ws_url)
        while self._running:
            try:
                logger.info(f"🔌 Connecting to {safe_url}")
                async with websockets.connect(self.ws_url, ping_interval=20) as ws:
                    self._ws = ws
                    await self._subscribe(ws)
                    self._reconnect_attempts = 0
                    logger.info(f"🟢 Watching {len(self.DEX_PROGRAMS)} DEX programs")

                    async for message in ws:
                        if not self._running:
                            break
                        self.handle_message(message)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Swap monitor connection error: {e}")
            finally:
                self._ws = None
                self._subscriptions.clear()
                self._pending.clear()

            if not self._running:
                break

            self._reconnect_attempts += 1
            delay = min(self.RECONNECT_STEP_SECONDS * self._reconnect_attempts, self.RECONNECT_MAX_SECONDS)
            logger.warning(f"Reconnecting in {delay}s", attempt=self._reconnect_attempts)
            await self._clock.sleep(delay)

    async def _subscribe(self, ws) -> None:
        for request_id, (name, program_id) in enumerate(self.DEX_PROGRAMS.items(), start=1):
            self._pending[request_id] = name
            await ws.send(json.dumps({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": "logsSubscribe",
                "params": [{"mentions": [program_id]}, {"commitment": "confirmed"}],
            }))

    def handle_message(self, message) -> Optional[str]:
        """
        Process one websocket message.

        Returns:
            The program name when the message produced a scan signal
        """
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        # Subscription confirmation
        if "id" in data and "result" in data:
            name = self._pending.pop(data["id"], None)
            if name is not None:
                self._subscriptions[data["result"]] = name
                logger.info(f"📡 Subscribed: {name}")
            return None

        if data.get("method") != "logsNotification":
            return None

        params = data.get("params") or {}
        value = ((params.get("result") or {}).get("value")) or {}
        if value.get("err") is not None:
            self._failed_tx_events += 1
            return None

        name = self._subscriptions.get(params.get("subscription"), "unknown")
        self._swap_events += 1
        try:
            self._on_signal(self.venue_for(name))
        except Exception as e:
            logger.error(f"Signal handler error: {e}")
        return name

    def get_stats(self) -> Dict[str, int]:
        return {
            "swap_events": self._swap_events,
            "failed_tx_events": self._failed_tx_events,
            "reconnect_attempts": self._reconnect_attempts,
        }
