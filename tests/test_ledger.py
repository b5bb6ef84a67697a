"""XrplLedgerClient against a mocked JSON-RPC client."""

from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from xrpl.asyncio.clients.exceptions import XRPLRequestFailureException
from xrpl.models.exceptions import XRPLModelException
from xrpl.models.response import Response, ResponseStatus

from bulksend.errors import DerivationError, IdentityError, NetworkError, TransportError, ValidationError
from bulksend.ledger import XrplLedgerClient, memo_from_text, probe_rippled, transaction_result_code
from bulksend.models import Fee

from tests.test_fee_info import FEE_RESULT

GENESIS_SEED = "snoPBrXtMeMyMHUVTgbuqAfg1SUTb"
GENESIS_ADDRESS = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
DESTINATION = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"
FEE = Fee(denom="XRP", amount=12, gas_limit=200000)


def ok(result: dict) -> Response:
    return Response(status=ResponseStatus.SUCCESS, result=result)


def error(result: dict) -> Response:
    return Response(status=ResponseStatus.ERROR, result=result)


def submit_result(engine_result: str, code: int, tx_hash: str = "A1B2C3") -> Response:
    return ok(
        {
            "engine_result": engine_result,
            "engine_result_code": code,
            "engine_result_message": "The transaction was applied. Only final in a validated ledger.",
            "tx_json": {"hash": tx_hash},
        }
    )


class HelperTests(IsolatedAsyncioTestCase):
    def test_memo_is_hex_encoded(self) -> None:
        self.assertEqual(memo_from_text("bulksend-tx-1").memo_data, b"bulksend-tx-1".hex())

    def test_transaction_result_code(self) -> None:
        self.assertEqual(transaction_result_code("tesSUCCESS"), 0)
        self.assertEqual(transaction_result_code("tecNO_DST_INSUF_XRP"), 125)
        self.assertEqual(transaction_result_code("tecSOMETHING_NEW"), 100)

    async def test_probe_gives_up_after_retries(self) -> None:
        post = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        with patch.object(httpx.AsyncClient, "post", post), self.assertRaises(NetworkError):
            await probe_rippled("http://localhost:5005", max_retries=2, retry_delay=0)
        self.assertEqual(post.await_count, 2)


class IdentityTests(IsolatedAsyncioTestCase):
    async def test_resolves_address_from_seed(self) -> None:
        ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=AsyncMock())

        self.assertEqual(await ledger.resolve_own_address(), GENESIS_ADDRESS)

    async def test_missing_or_bad_seed(self) -> None:
        for seed in (None, "", "not-a-seed"):
            ledger = XrplLedgerClient("http://localhost:5005", seed, client=AsyncMock())
            with self.subTest(seed=seed), self.assertRaises(IdentityError):
                await ledger.resolve_own_address()

    async def test_fresh_addresses_are_distinct(self) -> None:
        ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=AsyncMock())

        a = await ledger.derive_address_from_fresh_key()
        b = await ledger.derive_address_from_fresh_key()

        self.assertTrue(a.startswith("r"))
        self.assertNotEqual(a, b)
        self.assertNotEqual(a, GENESIS_ADDRESS)

    async def test_fresh_key_failure(self) -> None:
        ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=AsyncMock())

        with patch("bulksend.ledger.Wallet.create", side_effect=ValueError("no entropy")):
            with self.assertRaises(DerivationError):
                await ledger.derive_address_from_fresh_key()

    async def test_connect_records_server_info(self) -> None:
        ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=AsyncMock())

        with patch("bulksend.ledger.probe_rippled", AsyncMock(return_value={"build_version": "2.3.0"})):
            await ledger.connect()

        self.assertEqual(ledger.server_info["build_version"], "2.3.0")


class QueryTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.client = AsyncMock()
        self.ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=self.client)

    async def test_balance(self) -> None:
        self.client.request.return_value = ok({"account_data": {"Account": GENESIS_ADDRESS, "Balance": "25000000"}})

        self.assertEqual(await self.ledger.get_balance(GENESIS_ADDRESS, "XRP"), 25_000_000)
        req = self.client.request.await_args.args[0]
        self.assertEqual(req.account, GENESIS_ADDRESS)

    async def test_unfunded_account_has_zero_balance(self) -> None:
        self.client.request.return_value = error({"error": "actNotFound"})

        with self.assertLogs("bulksend.ledger", "WARNING"):
            self.assertEqual(await self.ledger.get_balance(DESTINATION, "XRP"), 0)

    async def test_balance_errors(self) -> None:
        self.client.request.return_value = error({"error": "noNetwork"})
        with self.assertRaises(NetworkError) as ctx:
            await self.ledger.get_balance(GENESIS_ADDRESS, "XRP")
        self.assertEqual(ctx.exception.payload, {"error": "noNetwork"})

        self.client.request.side_effect = httpx.ConnectError("connection refused")
        with self.assertRaises(NetworkError):
            await self.ledger.get_balance(GENESIS_ADDRESS, "XRP")

    async def test_balance_of_other_denom(self) -> None:
        with self.assertRaises(ValidationError):
            await self.ledger.get_balance(GENESIS_ADDRESS, "USD")
        self.client.request.assert_not_awaited()

    async def test_fee_info(self) -> None:
        self.client.request.return_value = ok(FEE_RESULT)

        info = await self.ledger.get_fee_info()

        self.assertEqual(info.base_fee, 10)
        self.assertEqual(info.suggested_fee(), 10)


class SubmitTransferTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.client = AsyncMock()
        self.ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=self.client)
        self.autofill = AsyncMock(return_value=MagicMock(name="signed"))
        self.submit = AsyncMock(return_value=submit_result("tesSUCCESS", 0))
        for target, mock in (("bulksend.ledger.autofill_and_sign", self.autofill), ("bulksend.ledger.submit", self.submit)):
            p = patch(target, mock)
            p.start()
            self.addCleanup(p.stop)

    async def send(self, amount: int = 1500, memo: str = "bulksend-tx-1"):
        return await self.ledger.submit_transfer(GENESIS_ADDRESS, DESTINATION, amount, "XRP", FEE, memo)

    async def test_builds_payment(self) -> None:
        self.ledger.wait_for_validation = False

        await self.send()

        payment, client, wallet = self.autofill.await_args.args
        self.assertEqual(payment.account, GENESIS_ADDRESS)
        self.assertEqual(payment.destination, DESTINATION)
        self.assertEqual(payment.amount, "1500")
        self.assertEqual(payment.fee, "12")
        self.assertEqual(payment.memos[0].memo_data, b"bulksend-tx-1".hex())
        self.assertIs(client, self.client)
        self.assertEqual(wallet.address, GENESIS_ADDRESS)

    async def test_preliminary_result_without_waiting(self) -> None:
        self.ledger.wait_for_validation = False

        result = await self.send()

        self.assertEqual(result.code, 0)
        self.assertEqual(result.tx_hash, "A1B2C3")
        self.assertTrue(result.raw_log.startswith("tesSUCCESS"))
        self.client.request.assert_not_awaited()

    async def test_waits_for_validated_result(self) -> None:
        self.client.request.side_effect = [
            ok({"hash": "A1B2C3", "validated": False}),
            ok({"hash": "A1B2C3", "validated": True, "ledger_index": 812, "meta": {"TransactionResult": "tecNO_DST_INSUF_XRP"}}),
        ]

        with patch("bulksend.constants.VALIDATION_POLL_INTERVAL", 0):
            result = await self.send()

        self.assertEqual(result.code, 125)
        self.assertEqual(result.tx_hash, "A1B2C3")
        self.assertIn("812", result.raw_log)
        self.assertEqual(self.client.request.await_count, 2)

    async def test_malformed_result_is_final(self) -> None:
        self.submit.return_value = submit_result("temBAD_AMOUNT", -298)

        result = await self.send()

        self.assertEqual(result.code, -298)
        self.client.request.assert_not_awaited()

    async def test_validation_timeout(self) -> None:
        self.ledger.validation_timeout = 0.05
        self.client.request.return_value = ok({"hash": "A1B2C3", "validated": False})

        with patch("bulksend.constants.VALIDATION_POLL_INTERVAL", 0.01), self.assertRaises(TransportError) as ctx:
            await self.send()

        self.assertEqual(ctx.exception.payload, {"tx_hash": "A1B2C3", "validated": False})

    async def test_transport_failures(self) -> None:
        for exc in (
            httpx.ConnectError("connection refused"),
            XRPLRequestFailureException({"error": "tooBusy", "error_message": "The server is too busy"}),
        ):
            self.submit.side_effect = exc
            with self.subTest(exc=type(exc).__name__), self.assertRaises(TransportError):
                await self.send()

    async def test_request_failure_payload(self) -> None:
        self.autofill.side_effect = XRPLRequestFailureException({"error": "actNotFound", "error_message": "Account not found."})

        with self.assertRaises(TransportError) as ctx:
            await self.send()

        self.assertEqual(ctx.exception.payload["error"], "actNotFound")

    async def test_invalid_transaction(self) -> None:
        self.autofill.side_effect = XRPLModelException("amount is invalid")

        with self.assertRaises(ValidationError):
            await self.send()
        self.submit.assert_not_awaited()

    async def test_refuses_other_sender_and_denom(self) -> None:
        with self.assertRaises(ValidationError):
            await self.ledger.submit_transfer(DESTINATION, GENESIS_ADDRESS, 1000, "XRP", FEE, "m")
        with self.assertRaises(ValidationError):
            await self.ledger.submit_transfer(GENESIS_ADDRESS, DESTINATION, 1000, "USD", FEE, "m")
        self.autofill.assert_not_awaited()

    async def test_payment_to_self_is_refused_locally(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            await self.ledger.submit_transfer(GENESIS_ADDRESS, GENESIS_ADDRESS, 1000, "XRP", FEE, "bulksend-tx-1")

        self.assertIn("destination", str(ctx.exception))
        self.autofill.assert_not_awaited()
        self.submit.assert_not_awaited()

    async def test_queued_counts_as_sent_without_waiting(self) -> None:
        self.ledger.wait_for_validation = False
        self.submit.return_value = submit_result("terQUEUED", -89)

        result = await self.send()

        self.assertEqual(result.code, 0)
        self.assertTrue(result.raw_log.startswith("terQUEUED"))
        self.assertIn("not validated", result.raw_log)
        self.client.request.assert_not_awaited()


class ReserveTests(IsolatedAsyncioTestCase):
    def test_reserve_from_server_info(self) -> None:
        ledger = XrplLedgerClient("http://localhost:5005", GENESIS_SEED, client=AsyncMock())
        self.assertIsNone(ledger.reserve_base)

        ledger.server_info = {"validated_ledger": {"seq": 812, "base_fee_xrp": 1e-05, "reserve_base_xrp": 1, "reserve_inc_xrp": 0.2}}
        self.assertEqual(ledger.reserve_base, 1_000_000)

        ledger.server_info = {"validated_ledger": {"reserve_base_xrp": 0.5}}
        self.assertEqual(ledger.reserve_base, 500_000)
