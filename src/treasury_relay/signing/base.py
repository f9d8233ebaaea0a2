"""Base interface for transaction signing.

Signing flow:
1. Transfer engine builds an unsigned EIP-1559 transaction dict
2. Signer returns the raw signed bytes (the private key never leaves it)
3. Connection broadcasts the raw bytes
"""

from abc import ABC, abstractmethod


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    The identity is fixed at construction and never changes for the
    lifetime of the process.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing account."""
        pass

    @abstractmethod
    def sign_transaction(self, tx: dict) -> bytes:
        """Sign a transaction dict.

        Args:
            tx: Transaction fields (nonce, to, value, gas, fees, chainId)

        Returns:
            Raw signed transaction bytes ready for broadcast

        Raises:
            SigningError: If the transaction cannot be signed
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"


class SigningError(Exception):
    """Exception raised when signing fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when no signing key is configured."""
    pass
