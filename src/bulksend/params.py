import logging

from bulksend.constants import DestinationMode
from bulksend.ledger import LedgerClient
from bulksend.models import AttemptParams, RunConfig
from bulksend.randoms import RandomSource, randint

log = logging.getLogger("bulksend.params")


async def resolve_destination(mode: DestinationMode, sender: str, ledger: LedgerClient) -> tuple[str, bool]:
    """Return ``(destination, fell_back)``.

    RANDOM mode asks the ledger for the address of a brand new keypair. The key
    is dropped as soon as we have its address. If that fails for any reason the
    attempt goes to the sender instead.
    """
    if mode is DestinationMode.SELF:
        return sender, False
    try:
        return await ledger.derive_address_from_fresh_key(), False
    except Exception as e:
        log.warning("Failed to generate random address, falling back to self. Reason: %s", e)
        return sender, True


async def derive_attempt(index: int, config: RunConfig, sender: str, ledger: LedgerClient, rng: RandomSource) -> AttemptParams:
    amount = randint(config.min_amount, config.max_amount, source=rng)
    delay_ms = randint(config.min_delay_ms, config.max_delay_ms, source=rng)
    destination, fell_back = await resolve_destination(config.destination_mode, sender, ledger)
    return AttemptParams(
        index=index,
        amount=amount,
        delay_ms=delay_ms,
        destination=destination,
        destination_fallback=fell_back,
    )
