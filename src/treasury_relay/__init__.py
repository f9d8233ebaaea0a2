"""Treasury relay: signs and broadcasts treasury withdrawals."""

__version__ = "0.1.0"
