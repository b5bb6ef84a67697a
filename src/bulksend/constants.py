from typing import Final
from enum import StrEnum

NATIVE_DENOM: Final = "XRP"


class DestinationMode(StrEnum):
    SELF   = "self"
    RANDOM = "random"


class Outcome(StrEnum):
    SUCCESS        = "SUCCESS"
    CHAIN_REJECTED = "CHAIN_REJECTED"
    SUBMIT_ERROR   = "SUBMIT_ERROR"


class SchedulerState(StrEnum):
    IDLE     = "IDLE"
    PRECHECK = "PRECHECK"
    RUNNING  = "RUNNING"
    DONE     = "DONE"
    ABORTED  = "ABORTED"


# Engine results a submit can report before the ledger closes that may still validate.
PROVISIONAL_RESULTS: Final = frozenset({"tesSUCCESS", "terQUEUED"})

# Numeric codes for final (validated) results. Validated txns only carry the name in meta.
TRANSACTION_RESULT_CODES: Final = {
    "tesSUCCESS":              0,
    "tecCLAIM":                100,
    "tecPATH_PARTIAL":         101,
    "tecUNFUNDED_PAYMENT":     104,
    "tecFAILED_PROCESSING":    105,
    "tecNO_DST":               124,
    "tecNO_DST_INSUF_XRP":     125,
    "tecPATH_DRY":             128,
    "tecUNFUNDED":             129,
    "tecNO_PERMISSION":        139,
    "tecINSUFFICIENT_RESERVE": 141,
}
UNKNOWN_FAILURE_CODE: Final = TRANSACTION_RESULT_CODES["tecCLAIM"]

DEFAULT_COOLDOWN_MS = 1000
MAX_FEE_DROPS = 1000  # refuse "auto" fees above this, 100x the base fee
RPC_TIMEOUT = 2.0
SUBMIT_TIMEOUT = 20
VALIDATION_TIMEOUT = 20.0
VALIDATION_POLL_INTERVAL = 0.5
PROBE_RETRIES = 5
PROBE_RETRY_DELAY = 2.0

__all__ = [
    "DEFAULT_COOLDOWN_MS",
    "MAX_FEE_DROPS",
    "NATIVE_DENOM",
    "PROBE_RETRIES",
    "PROBE_RETRY_DELAY",
    "PROVISIONAL_RESULTS",
    "RPC_TIMEOUT",
    "SUBMIT_TIMEOUT",
    "TRANSACTION_RESULT_CODES",
    "UNKNOWN_FAILURE_CODE",
    "VALIDATION_POLL_INTERVAL",
    "VALIDATION_TIMEOUT",

    ######
    "DestinationMode",
    "Outcome",
    "SchedulerState",
]
