"""
Settlement providers — the step that decides whether a PPOB sale went through.

In production this is a call to the upstream biller (Digiflazz, DOKU, ...).
The engine only needs a yes/no answer, so any object with an async
`settle(transaction) -> SettlementResult` method can be plugged in via the
get_settlement_provider dependency.
"""

import asyncio
from dataclasses import dataclass
from typing import Protocol

from ppob_ledger.config import settings
from ppob_ledger.models.transaction import Transaction


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    message: str | None = None


class SettlementProvider(Protocol):
    async def settle(self, transaction: Transaction) -> SettlementResult: ...


class SimulatedSettlement:
    """Always-succeeding provider, optionally with artificial latency."""

    def __init__(self, delay_ms: int | None = None):
        self.delay_ms = settings.SETTLEMENT_DELAY_MS if delay_ms is None else delay_ms

    async def settle(self, transaction: Transaction) -> SettlementResult:
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)
        return SettlementResult(success=True)


def get_settlement_provider() -> SettlementProvider:
    """FastAPI dependency; override in tests or deployments to swap providers."""
    return SimulatedSettlement()
