import asyncio
import logging
from decimal import Decimal
from typing import Protocol

import httpx
from xrpl import CryptoAlgorithm, XRPLException
from xrpl.asyncio.clients import AsyncJsonRpcClient
from xrpl.asyncio.clients.exceptions import XRPLRequestFailureException
from xrpl.asyncio.transaction import autofill_and_sign, submit
from xrpl.models.exceptions import XRPLModelException
from xrpl.models.requests import AccountInfo, Tx
from xrpl.models.requests import Fee as FeeRequest
from xrpl.models.transactions import Memo, Payment
from xrpl.utils import xrp_to_drops
from xrpl.wallet import Wallet

import bulksend.constants as C
from bulksend.errors import (
    DerivationError,
    IdentityError,
    LedgerError,
    NetworkError,
    TransportError,
    ValidationError,
)
from bulksend.fee_info import FeeInfo
from bulksend.models import Fee, TransferResult

log = logging.getLogger("bulksend.ledger")


class LedgerClient(Protocol):
    async def resolve_own_address(self) -> str: ...
    async def derive_address_from_fresh_key(self) -> str: ...
    async def get_balance(self, address: str, denom: str) -> int: ...
    async def submit_transfer(self, sender: str, destination: str, amount: int, denom: str, fee: Fee, memo: str) -> TransferResult: ...


async def probe_rippled(url: str, max_retries: int = C.PROBE_RETRIES, retry_delay: float = C.PROBE_RETRY_DELAY) -> dict:
    """Probe a rippled JSON-RPC endpoint with retries until it responds.

    Args:
        url: RPC endpoint URL
        max_retries: Maximum number of attempts before giving up
        retry_delay: Seconds to wait between attempts

    Returns:
        The ``info`` block of the server_info response.
    """
    payload = {"method": "server_info", "params": [{}]}

    for attempt in range(1, max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=C.RPC_TIMEOUT) as http:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                log.info("RPC endpoint responding (attempt %s/%s)", attempt, max_retries)
                return r.json().get("result", {}).get("info", {})
        except (httpx.HTTPError, ValueError) as e:
            if attempt < max_retries:
                log.info("RPC not ready yet (attempt %s/%s): %s - retrying in %ss...", attempt, max_retries, e.__class__.__name__, retry_delay)
                await asyncio.sleep(retry_delay)
            else:
                log.error("RPC failed after %s attempts", max_retries)
                raise NetworkError(f"Cannot reach {url}: {e}") from e


def memo_from_text(text: str) -> Memo:
    return Memo(memo_data=text.encode("utf-8").hex())


def transaction_result_code(result: str) -> int:
    return C.TRANSACTION_RESULT_CODES.get(result, C.UNKNOWN_FAILURE_CODE)


class XrplLedgerClient:
    """Ledger client for a single sender account on an XRPL node.

    The JSON-RPC client and the sender wallet are created once and reused for
    every request of the run.
    """

    def __init__(
        self,
        rpc_url: str,
        seed: str | None,
        *,
        algorithm: CryptoAlgorithm = CryptoAlgorithm.SECP256K1,
        wait_for_validation: bool = True,
        validation_timeout: float = C.VALIDATION_TIMEOUT,
        client: AsyncJsonRpcClient | None = None,
    ):
        self.rpc_url = rpc_url
        self.algorithm = algorithm
        self.wait_for_validation = wait_for_validation
        self.validation_timeout = validation_timeout
        self.client = client or AsyncJsonRpcClient(rpc_url)
        self._seed = seed
        self._wallet: Wallet | None = None
        self.server_info: dict = {}

    async def connect(self) -> None:
        self.server_info = await probe_rippled(self.rpc_url)
        log.info("Connected to %s (build %s)", self.rpc_url, self.server_info.get("build_version", "unknown"))

    @property
    def reserve_base(self) -> int | None:
        """Account reserve in drops from the validated ledger seen at connect, None if unknown."""
        reserve = self.server_info.get("validated_ledger", {}).get("reserve_base_xrp")
        if reserve is None:
            return None
        return int(xrp_to_drops(Decimal(str(reserve))))

    async def _rpc(self, req, *, t: float = C.RPC_TIMEOUT, error: type[LedgerError] = NetworkError):
        try:
            return await asyncio.wait_for(self.client.request(req), timeout=t)
        except (httpx.HTTPError, OSError, TimeoutError) as e:
            raise error(f"{req.method} request failed: {e.__class__.__name__} {e}") from e

    def _load_wallet(self) -> Wallet:
        if self._wallet is None:
            if not self._seed:
                raise IdentityError("WALLET_SEED not set")
            try:
                self._wallet = Wallet.from_seed(self._seed, algorithm=self.algorithm)
            except (XRPLException, ValueError) as e:
                raise IdentityError(f"Invalid wallet seed: {e}") from e
        return self._wallet

    async def resolve_own_address(self) -> str:
        return self._load_wallet().address

    async def derive_address_from_fresh_key(self) -> str:
        try:
            return Wallet.create(algorithm=self.algorithm).address
        except (XRPLException, ValueError) as e:
            raise DerivationError(f"Could not create a random wallet: {e}") from e

    async def get_balance(self, address: str, denom: str) -> int:
        if denom != C.NATIVE_DENOM:
            raise ValidationError(f"Unsupported denom {denom!r}, only {C.NATIVE_DENOM} balances can be read")
        resp = await self._rpc(AccountInfo(account=address, ledger_index="validated"))
        if not resp.is_successful():
            if resp.result.get("error") == "actNotFound":
                log.warning("Account %s not found on ledger, treating balance as 0", address)
                return 0
            raise NetworkError(f"account_info failed: {resp.result.get('error')}", payload=resp.result)
        return int(resp.result["account_data"]["Balance"])

    async def get_fee_info(self) -> FeeInfo:
        resp = await self._rpc(FeeRequest())
        if not resp.is_successful():
            raise NetworkError(f"fee failed: {resp.result.get('error')}", payload=resp.result)
        return FeeInfo.from_fee_result(resp.result)

    async def submit_transfer(self, sender: str, destination: str, amount: int, denom: str, fee: Fee, memo: str) -> TransferResult:
        wallet = self._load_wallet()
        if sender != wallet.address:
            raise ValidationError(f"Cannot sign for {sender}, wallet is {wallet.address}")
        if denom != C.NATIVE_DENOM or fee.denom != C.NATIVE_DENOM:
            raise ValidationError(f"Unsupported denom {denom!r}/{fee.denom!r}")

        try:
            payment = Payment(
                account=sender,
                destination=destination,
                amount=str(amount),
                fee=str(fee.amount),
                memos=[memo_from_text(memo)],
            )
            async with asyncio.timeout(C.SUBMIT_TIMEOUT):
                signed = await autofill_and_sign(payment, self.client, wallet)
                resp = await submit(signed, self.client)
        except XRPLModelException as e:
            raise ValidationError(str(e)) from e
        except XRPLRequestFailureException as e:
            raise TransportError(str(e), payload={"error": getattr(e, "error", None), "error_message": getattr(e, "error_message", None)}) from e
        except XRPLException as e:
            raise TransportError(str(e)) from e
        except (httpx.HTTPError, OSError, TimeoutError) as e:
            raise TransportError(f"submit failed: {e.__class__.__name__} {e}") from e

        res = resp.result
        er = res.get("engine_result", "")
        code = int(res.get("engine_result_code", C.UNKNOWN_FAILURE_CODE))
        tx_hash = res.get("tx_json", {}).get("hash") or signed.get_hash()
        raw_log = f"{er}: {res.get('engine_result_message', '')}"
        log.debug("submit %s engine_result=%s code=%s", tx_hash, er, code)

        if er not in C.PROVISIONAL_RESULTS:
            return TransferResult(code=code, tx_hash=tx_hash, raw_log=raw_log)
        if not self.wait_for_validation:
            # a queued txn is applied later just like a provisional tesSUCCESS
            return TransferResult(code=0, tx_hash=tx_hash, raw_log=f"{raw_log} (not validated)")

        final = await self._wait_for_validation(tx_hash)
        meta_result = final["meta"]["TransactionResult"]
        return TransferResult(
            code=transaction_result_code(meta_result),
            tx_hash=tx_hash,
            raw_log=f"{meta_result} (validated in ledger {final.get('ledger_index')})",
        )

    async def _wait_for_validation(self, tx_hash: str) -> dict:
        try:
            async with asyncio.timeout(self.validation_timeout):
                while True:
                    r = await self._rpc(Tx(transaction=tx_hash), error=TransportError)
                    if r.result.get("validated"):
                        return r.result
                    await asyncio.sleep(C.VALIDATION_POLL_INTERVAL)
        except TimeoutError as e:
            raise TransportError(
                f"{tx_hash} not validated within {self.validation_timeout}s",
                payload={"tx_hash": tx_hash, "validated": False},
            ) from e
