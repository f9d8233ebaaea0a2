"""Transaction signing for the treasury account.

Provides:
- SignerBackend: interface every signer implements
- LocalSigner: in-memory treasury key (hot wallet)
"""

from treasury_relay.signing.base import KeyNotFoundError, SignerBackend, SigningError
from treasury_relay.signing.local import LocalSigner

__all__ = [
    "KeyNotFoundError",
    "LocalSigner",
    "SignerBackend",
    "SigningError",
]
