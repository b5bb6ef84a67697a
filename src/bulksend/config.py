"""Configuration collection.

Values are layered, later layers winning:

1. ``config.toml`` shipped with the package
2. environment variables (a ``.env`` file in the working directory is loaded first)
3. command-line flags or interactive answers

The merged values are validated by pydantic models and turned into the frozen
``RunConfig`` the scheduler consumes.
"""

import copy
import logging
import os
import tomllib
from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from xrpl import CryptoAlgorithm, XRPLException
from xrpl.utils import drops_to_xrp, xrp_to_drops

from bulksend.constants import NATIVE_DENOM, DestinationMode
from bulksend.errors import ConfigError
from bulksend.models import Fee, RunConfig

log = logging.getLogger("bulksend.config")

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"

# env var -> (config.toml section, key)
ENV_KEYS: dict[str, tuple[str, str]] = {
    "RPC_URL": ("rippled", "rpc_url"),
    "WALLET_ALGORITHM": ("rippled", "algorithm"),
    "WAIT_FOR_VALIDATION": ("rippled", "wait_for_validation"),
    "DENOM": ("run", "denom"),
    "MEMO_PREFIX": ("run", "memo_prefix"),
    "FEE_AMOUNT": ("fee", "amount"),
    "GAS_LIMIT": ("fee", "gas_limit"),
}
SEED_ENV = "WALLET_SEED"


class RunSettings(BaseModel):
    """Operator intent in operator units: XRP amounts, delays in seconds."""

    model_config = ConfigDict(frozen=True)

    tx_count: PositiveInt
    min_amount: Decimal = Field(ge=0)
    max_amount: Decimal = Field(ge=0)
    min_delay: NonNegativeFloat
    max_delay: NonNegativeFloat
    cooldown: NonNegativeFloat = 1.0
    destination_mode: DestinationMode = DestinationMode.RANDOM
    denom: str = NATIVE_DENOM
    memo_prefix: str = "bulksend-tx"
    fee_amount: int | Literal["auto"]
    gas_limit: PositiveInt

    @field_validator("destination_mode", mode="before")
    @classmethod
    def _lower_mode(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("denom")
    @classmethod
    def _native_only(cls, v: str) -> str:
        if v.upper() != NATIVE_DENOM:
            raise ValueError(f"only the native {NATIVE_DENOM} denom is supported, got {v!r}")
        return NATIVE_DENOM

    @field_validator("fee_amount")
    @classmethod
    def _fee_not_negative(cls, v):
        if isinstance(v, int) and v < 0:
            raise ValueError("fee must be >= 0 drops")
        return v

    @model_validator(mode="after")
    def _ranges(self) -> "RunSettings":
        if self.min_amount > self.max_amount:
            raise ValueError(f"min_amount ({self.min_amount}) is greater than max_amount ({self.max_amount})")
        if self.min_delay > self.max_delay:
            raise ValueError(f"min_delay ({self.min_delay}) is greater than max_delay ({self.max_delay})")
        return self

    def to_run_config(self, fee_amount: int | None = None) -> RunConfig:
        fee = self.fee_amount if fee_amount is None else fee_amount
        if not isinstance(fee, int):
            raise ConfigError("fee is 'auto' and has not been resolved against the node yet")
        try:
            min_drops = int(xrp_to_drops(self.min_amount))
            max_drops = int(xrp_to_drops(self.max_amount))
        except XRPLException as e:
            raise ConfigError(f"Invalid amount: {e}") from e
        return RunConfig(
            tx_count=self.tx_count,
            min_amount=min_drops,
            max_amount=max_drops,
            min_delay_ms=_to_ms(self.min_delay),
            max_delay_ms=_to_ms(self.max_delay),
            destination_mode=self.destination_mode,
            denom=self.denom,
            fee=Fee(denom=self.denom, amount=fee, gas_limit=self.gas_limit),
            memo_prefix=self.memo_prefix,
            cooldown_ms=_to_ms(self.cooldown),
        )


class LedgerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    rpc_url: str
    wallet_seed: str | None = Field(default=None, repr=False)
    algorithm: CryptoAlgorithm = CryptoAlgorithm.SECP256K1
    wait_for_validation: bool = True
    validation_timeout: PositiveFloat = 20.0

    @field_validator("algorithm", mode="before")
    @classmethod
    def _lower_algorithm(cls, v):
        return v.lower() if isinstance(v, str) else v


def _to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def check_reserve(cfg: RunConfig, reserve: int | None) -> None:
    """Fresh RANDOM destinations are only created by a payment of at least the account reserve."""
    if cfg.destination_mode is not DestinationMode.RANDOM or reserve is None:
        return
    if cfg.min_amount < reserve:
        raise ConfigError(
            f"min_amount ({drops_to_xrp(str(cfg.min_amount))} XRP) is below the account reserve "
            f"({drops_to_xrp(str(reserve))} XRP), payments to new random addresses would fail"
        )


def load_file_config(path: Path = config_file) -> dict[str, Any]:
    return tomllib.loads(Path(path).read_text())


def apply_env(cfg: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    merged = copy.deepcopy(cfg)
    for var, (section, key) in ENV_KEYS.items():
        value = env.get(var)
        if value:
            log.debug("%s overrides %s.%s", var, section, key)
            merged.setdefault(section, {})[key] = value
    return merged


def _format_errors(e: PydanticValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def collect(
    overrides: Mapping[str, Any] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    path: Path = config_file,
    dotenv: bool = True,
) -> tuple[RunSettings, LedgerSettings]:
    """Merge file, environment and ``overrides`` and validate the result.

    ``overrides`` uses the flat field names of ``RunSettings``/``LedgerSettings``;
    ``None`` values are ignored so argparse namespaces can be passed through as is.
    """
    if dotenv:
        load_dotenv(override=False)
    env = os.environ if env is None else env

    try:
        cfg = apply_env(load_file_config(path), env)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    fee = cfg.get("fee", {})
    run_values: dict[str, Any] = {
        **cfg.get("run", {}),
        "fee_amount": fee.get("amount"),
        "gas_limit": fee.get("gas_limit"),
    }
    ledger_values: dict[str, Any] = {**cfg.get("rippled", {}), "wallet_seed": env.get(SEED_ENV)}

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key in RunSettings.model_fields:
            run_values[key] = value
        elif key in LedgerSettings.model_fields:
            ledger_values[key] = value
        else:
            raise ConfigError(f"Unknown setting {key!r}")

    try:
        return RunSettings(**run_values), LedgerSettings(**ledger_values)
    except PydanticValidationError as e:
        raise ConfigError(_format_errors(e)) from e
