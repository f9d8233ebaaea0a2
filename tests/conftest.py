"""Pytest configuration and fixtures."""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
from web3 import Web3

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["ADMIN_TOKEN"] = ""

from treasury_relay.config import Settings
from treasury_relay.rpc.endpoints import Endpoint
from treasury_relay.service import TreasuryService
from treasury_relay.signing.base import SignerBackend
from treasury_relay.transfer.base import (
    ConfirmationTimeoutError,
    ConnectivityError,
    NetworkFeeData,
    SubmissionRejectedError,
)

GWEI = 10**9
ETH = 10**18

TREASURY = "0x" + "ab" * 20
DEST_A = "0x" + "11" * 20
DEST_B = "0x" + "22" * 20
PAYOUT = "0x" + "33" * 20
INTERNAL = "0x" + "44" * 20

RPC_URLS = ["http://rpc-a.test", "http://rpc-b.test", "http://rpc-c.test"]


class FakeSigner(SignerBackend):
    """Signer that returns the tx dict repr instead of a real signature."""

    @property
    def address(self) -> str:
        return Web3.to_checksum_address(TREASURY)

    def sign_transaction(self, tx: dict) -> bytes:
        return repr(sorted(tx.items())).encode()


@dataclass
class FakeChain:
    """In-memory network shared by every fake connection."""
    balance: int = 1 * ETH
    nonce: int = 7
    fee_data: NetworkFeeData = field(default_factory=lambda: NetworkFeeData(
        gas_price=32 * GWEI,
        base_fee=30 * GWEI,
        max_priority_fee=10 * GWEI,
        max_fee=70 * GWEI,
    ))
    chain_id: int = 1
    receipt_status: int = 1
    deduct_on_send: bool = True
    down: set = field(default_factory=set)
    balance_overrides: dict = field(default_factory=dict)
    balance_errors: dict = field(default_factory=dict)  # read number (1-based) -> exception
    balance_reads: int = 0
    fee_gate: Optional[asyncio.Event] = None
    send_errors: list = field(default_factory=list)
    wait_error: Optional[Exception] = None
    sent: list = field(default_factory=list)
    opened: list = field(default_factory=list)
    closed: int = 0


class FakeConnection:
    """Implements the Connection interface against a FakeChain."""

    def __init__(self, endpoint: Endpoint, signer: SignerBackend, chain: FakeChain):
        self.endpoint = endpoint
        self.signer = signer
        self.chain = chain

    @property
    def address(self) -> str:
        return self.signer.address

    def _check(self) -> None:
        if self.endpoint.url in self.chain.down:
            raise ConnectivityError(f"{self.endpoint} unreachable")

    async def verify_chain(self) -> None:
        self._check()
        if self.chain.chain_id != self.endpoint.chain_id:
            raise ConnectivityError("chain mismatch")

    async def get_balance(self, address: Optional[str] = None) -> int:
        self._check()
        await asyncio.sleep(0)
        self.chain.balance_reads += 1
        error = self.chain.balance_errors.pop(self.chain.balance_reads, None)
        if error is not None:
            raise error
        return self.chain.balance_overrides.get(self.endpoint.url, self.chain.balance)

    async def get_transaction_count(self) -> int:
        self._check()
        await asyncio.sleep(0)
        return self.chain.nonce

    async def get_fee_data(self) -> NetworkFeeData:
        self._check()
        await asyncio.sleep(0)
        if self.chain.fee_gate is not None:
            await self.chain.fee_gate.wait()
        return self.chain.fee_data

    async def send_transaction(self, tx: dict) -> str:
        self._check()
        await asyncio.sleep(0)
        if self.chain.send_errors:
            raise self.chain.send_errors.pop(0)
        self.signer.sign_transaction(tx)
        self.chain.sent.append(dict(tx))
        if self.chain.deduct_on_send:
            self.chain.balance -= tx["value"]
        self.chain.nonce = max(self.chain.nonce, tx["nonce"] + 1)
        return "0x" + f"{len(self.chain.sent):064x}"

    async def wait_for_receipt(self, tx_hash: str, timeout: float, poll_latency: float = 2.0) -> Any:
        await asyncio.sleep(0)
        if self.chain.wait_error is not None:
            error = self.chain.wait_error
            if isinstance(error, ConfirmationTimeoutError):
                error.tx_hash = tx_hash
            raise error
        return {"status": self.chain.receipt_status, "blockNumber": 100, "gasUsed": 21000}

    async def close(self) -> None:
        self.chain.closed += 1


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def connection_factory(chain):
    def factory(endpoint, signer, request_timeout):
        chain.opened.append(endpoint.url)
        return FakeConnection(endpoint, signer, chain)
    return factory


@pytest.fixture
def settings() -> Settings:
    return Settings(
        treasury_private_key="",
        payout_wallet=PAYOUT,
        internal_contract_address=INTERNAL,
        rpc_urls=",".join(RPC_URLS),
        chain_id=1,
        receipt_timeout=1.0,
        receipt_poll_interval=0.01,
        lock_timeout=5.0,
        _env_file=None,
    )


@pytest.fixture
def approvals() -> list:
    """Decisions returned by the approval step, consumed in order (default approve)."""
    return []


@pytest.fixture
def service(settings, connection_factory, approvals) -> TreasuryService:
    def approve(command) -> bool:
        return approvals.pop(0) if approvals else True

    return TreasuryService(
        settings,
        signer=FakeSigner(),
        connection_factory=connection_factory,
        approve=approve,
    )


def rejection(message: str) -> SubmissionRejectedError:
    return SubmissionRejectedError(f"Node rejected transaction: {message}")
