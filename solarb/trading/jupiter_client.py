"""
Jupiter swap client for trading operations.
Handles quotes, swap transaction building, signing, simulation and submission.
"""

import base64
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from solarb.clock import Clock, get_clock
from solarb.config import LAMPORTS_PER_SOL, get_config
from solarb.models import Quote, TokenBalance, TxStatus
from solarb.logger import get_logger


logger = get_logger("jupiter")


TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


def load_keypair(raw: str) -> Keypair:
    """Load a wallet from a base58 secret or a JSON byte array."""
    raw = raw.strip()
    try:
        if raw.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(raw)))
        return Keypair.from_base58_string(raw)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid WALLET_PRIVATE_KEY: {e}") from e


class JupiterClient:
    """
    Async client for the Jupiter swap API plus Solana JSON-RPC.

    Jupiter builds the swap; we sign it locally and talk to the RPC node
    ourselves:
    - Quotes and swap transactions come from Jupiter
    - Simulation, submission and confirmation go through the RPC node
    - The SOL/USD price comes from Coinbase
    """

    CONFIRM_TIMEOUT_SECONDS = 60
    CONFIRM_POLL_SECONDS = 2
    SUBMIT_ATTEMPTS = 2
    SUBMIT_RETRY_PAUSE_SECONDS = 2
    SOL_PRICE_TTL_SECONDS = 60

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        keypair: Optional[Keypair] = None,
        clock: Optional[Clock] = None,
    ):
        config = get_config()
        self._rpc_url = config.solana.rpc_url
        self._quote_url = config.prices.jupiter_quote_api
        self._swap_url = config.prices.jupiter_swap_api
        self._sol_price_url = config.prices.sol_price_api
        self._slippage_bps = int(config.trading.slippage_tolerance * 10_000)
        self._clock = clock or get_clock()

        if keypair is None:
            if not config.solana.wallet_private_key:
                raise ValueError("WALLET_PRIVATE_KEY is required for the swap client")
            keypair = load_keypair(config.solana.wallet_private_key)
        self._keypair = keypair

        self._http = http
        self._owns_http = http is None
        self._rpc_id = 0

        # SOL price cache
        self._sol_price_usd: Optional[Decimal] = None
        self._sol_price_at: float = 0.0

    @property
    def pubkey(self) -> str:
        return str(self._keypair.pubkey())

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=30.0)
            self._owns_http = True
        logger.info("Swap client ready", wallet=self.pubkey, rpc=self._rpc_url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None
        logger.info("Swap client closed")

    # Jupiter

    async def get_quote(self, input_mint: str, output_mint: str, amount: int) -> Optional[Quote]:
        """
        Get an executable quote; Jupiter auto-routes for best price.

        Args:
            input_mint: Mint being sold
            output_mint: Mint being bought
            amount: Input amount in base units

        Returns:
            Quote or None if no route is available
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": int(amount),
            "slippageBps": self._slippage_bps,
            "onlyDirectRoutes": "false",
        }
        try:
            response = await self._http.get(self._quote_url, params=params, timeout=8.0)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Jupiter quote error", input=input_mint, output=output_mint, error=str(e))
            return None

        if not data or not data.get("outAmount"):
            return None

        return Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(data.get("inAmount", amount)),
            out_amount=int(data["outAmount"]),
            price_impact_pct=float(data.get("priceImpactPct") or 0),
            raw=data,
        )

    async def _build_swap(self, quote: Quote) -> bytes:
        """Fetch the swap transaction for a quote and sign it with our wallet."""
        body = {
            "quoteResponse": quote.raw,
            "userPublicKey": self.pubkey,
            "wrapAndUnwrapSol": True,
            "computeUnitPriceMicroLamports": "auto",
        }
        response = await self._http.post(self._swap_url, json=body, timeout=10.0)
        response.raise_for_status()
        swap_tx_b64 = response.json()["swapTransaction"]

        unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap_tx_b64))
        signed = VersionedTransaction(unsigned.message, [self._keypair])
        return bytes(signed)

    async def simulate(self, quote: Quote, label: str = "swap") -> bool:
        """Build, sign and simulate a swap without submitting it."""
        try:
            raw_tx = await self._build_swap(quote)
            result = await self._rpc("simulateTransaction", [
                base64.b64encode(raw_tx).decode(),
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                    "commitment": "confirmed",
                },
            ])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Simulation error for {label}", error=str(e))
            return False

        err = (result or {}).get("value", {}).get("err")
        if err is not None:
            logger.warning(f"Simulation failed for {label}", error=json.dumps(err))
            return False
        return True

    async def submit(self, quote: Quote, label: str = "swap") -> Optional[str]:
        """
        Build, sign, send and confirm a swap.

        The whole cycle is retried with a fresh transaction on failure.

        Returns:
            Transaction signature, or None if every attempt failed
        """
        for attempt in range(1, self.SUBMIT_ATTEMPTS + 1):
            try:
                raw_tx = await self._build_swap(quote)
                signature = await self._rpc("sendTransaction", [
                    base64.b64encode(raw_tx).decode(),
                    {
                        "encoding": "base64",
                        "skipPreflight": False,
                        "maxRetries": 2,
                        "preflightCommitment": "confirmed",
                    },
                ])
                logger.info(f"{label} submitted", tx=f"https://solscan.io/tx/{signature}")

                status = await self.wait_for_confirmation(signature)
                if status == TxStatus.CONFIRMED:
                    logger.info(f"✅ {label} confirmed", signature=signature)
                    return signature
                logger.error(f"{label} not confirmed", signature=signature, status=status.value)

            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.error(f"❌ {label} attempt {attempt}/{self.SUBMIT_ATTEMPTS} failed: {e}")

            if attempt < self.SUBMIT_ATTEMPTS:
                await self._clock.sleep(self.SUBMIT_RETRY_PAUSE_SECONDS)

        return None

    async def wait_for_confirmation(self, signature: str) -> TxStatus:
        """Poll the signature status until confirmed, failed or timed out."""
        deadline = self._clock.time() + self.CONFIRM_TIMEOUT_SECONDS
        while self._clock.time() < deadline:
            status = await self.get_signature_status(signature)
            if status != TxStatus.PENDING:
                return status
            await self._clock.sleep(self.CONFIRM_POLL_SECONDS)
        return TxStatus.PENDING

    async def get_signature_status(self, signature: str) -> TxStatus:
        try:
            result = await self._rpc(
                "getSignatureStatuses",
                [[signature], {"searchTransactionHistory": True}],
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Signature status lookup failed", error=str(e))
            return TxStatus.PENDING

        values = (result or {}).get("value") or [None]
        status = values[0]
        if not status:
            return TxStatus.PENDING
        if status.get("err"):
            logger.error("Transaction error", signature=signature, error=json.dumps(status["err"]))
            return TxStatus.FAILED
        if status.get("confirmationStatus") in ("confirmed", "finalized"):
            return TxStatus.CONFIRMED
        return TxStatus.PENDING

    # Wallet

    async def get_sol_balance(self) -> Optional[Decimal]:
        """Native SOL balance of the wallet, in SOL."""
        try:
            result = await self._rpc("getBalance", [self.pubkey, {"commitment": "confirmed"}])
            return Decimal(int(result["value"])) / LAMPORTS_PER_SOL
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to read SOL balance", error=str(e))
            return None

    async def get_token_balances(self) -> List[TokenBalance]:
        """Non-zero SPL token balances held by the wallet."""
        try:
            result = await self._rpc("getTokenAccountsByOwner", [
                self.pubkey,
                {"programId": TOKEN_PROGRAM_ID},
                {"encoding": "jsonParsed", "commitment": "confirmed"},
            ])
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to list token accounts", error=str(e))
            return []

        balances = []
        for account in (result or {}).get("value") or []:
            try:
                info = account["account"]["data"]["parsed"]["info"]
                amount = info["tokenAmount"]
                ui_amount = float(amount.get("uiAmount") or 0)
                if ui_amount <= 0:
                    continue
                balances.append(TokenBalance(
                    mint=info["mint"],
                    amount_raw=int(amount.get("amount") or 0),
                    ui_amount=ui_amount,
                    decimals=int(amount.get("decimals") or 0),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        return balances

    async def get_sol_price_usd(self) -> Optional[Decimal]:
        """SOL/USD spot price, cached for a minute; last known value on failure."""
        now = self._clock.time()
        if self._sol_price_usd is not None and now - self._sol_price_at < self.SOL_PRICE_TTL_SECONDS:
            return self._sol_price_usd

        try:
            response = await self._http.get(self._sol_price_url, timeout=5.0)
            response.raise_for_status()
            price = Decimal(str(response.json()["data"]["amount"]))
        except (httpx.HTTPError, ValueError, KeyError, ArithmeticError) as e:
            logger.warning(f"Could not fetch SOL price: {e}", cached=str(self._sol_price_usd))
            return self._sol_price_usd

        if price <= 0:
            return self._sol_price_usd

        self._sol_price_usd = price
        self._sol_price_at = now
        return price

    # JSON-RPC

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC call; raises ValueError on an RPC error response."""
        self._rpc_id += 1
        payload: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._rpc_id,
            "method": method,
            "params": params,
        }
        response = await self._http.post(self._rpc_url, json=payload)
        response.raise_for_status()
        data = response.json()
        if data.get("error"):
            raise ValueError(f"RPC {method} error: {data['error'].get('message', data['error'])}")
        return data.get("result")
