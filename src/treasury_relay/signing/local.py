"""Local signing backend.

Holds the treasury private key in memory. Suitable for a hot wallet that
only pays out small amounts.

WARNING: The private key lives in process memory for the lifetime of the
service.
"""

import logging

from eth_account import Account
from eth_account.signers.local import LocalAccount

from treasury_relay.signing.base import KeyNotFoundError, SignerBackend, SigningError

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Signing backend using an in-memory private key."""

    def __init__(self, private_key: str):
        """Derive the signing identity.

        Args:
            private_key: Hex private key, with or without 0x prefix

        Raises:
            KeyNotFoundError: If the key is empty
            SigningError: If the key is malformed
        """
        private_key = (private_key or "").strip()
        if not private_key:
            raise KeyNotFoundError("TREASURY_PRIVATE_KEY is not set")

        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"

        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid treasury private key: {e}") from e

        logger.info(f"Loaded treasury signer {self._account.address}")

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: dict) -> bytes:
        """Sign with the treasury key."""
        try:
            signed = self._account.sign_transaction(tx)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Failed to sign transaction: {e}") from e
        return bytes(signed.raw_transaction)
