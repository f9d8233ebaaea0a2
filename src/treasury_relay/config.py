"""Application configuration using pydantic-settings.

Everything the treasury relay needs is read from environment variables
(or a local .env file). Fee and amount limits are expressed in gwei / ether
here and converted to wei where they are consumed.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RPC_URLS = ",".join([
    "https://ethereum-rpc.publicnode.com",
    "https://eth.drpc.org",
    "https://rpc.ankr.com/eth",
    "https://eth-mainnet.public.blastapi.io",
])


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Treasury
    # ======================
    treasury_private_key: str = Field(
        default="", description="Hex private key of the treasury account"
    )
    payout_wallet: str = Field(
        default="", description="Default destination when a request names none"
    )
    internal_contract_address: str = Field(
        default="0x29983BE497D4c1D39Aa80D20Cf74173ae81D2af5",
        description="Internal contract targeted by redirected variants",
    )

    # ======================
    # Network
    # ======================
    chain_id: int = Field(default=1, description="Expected chain id of every RPC endpoint")
    rpc_urls: str = Field(
        default=DEFAULT_RPC_URLS, description="Comma-separated RPC endpoints in failover order"
    )
    request_timeout: float = Field(default=30.0, description="RPC request timeout (seconds)")
    receipt_timeout: float = Field(
        default=300.0, description="Maximum wait for a transaction receipt (seconds)"
    )
    receipt_poll_interval: float = Field(
        default=2.0, description="Receipt polling interval (seconds)"
    )

    # ======================
    # Fees & Gas
    # ======================
    min_priority_fee_gwei: int = Field(
        default=5, description="Floor for the priority fee when the network under-suggests"
    )
    default_base_fee_gwei: int = Field(
        default=20, description="Base fee assumed when the network reports none"
    )
    high_priority_fee_gwei: int = Field(
        default=100, description="Priority fee used by the max-priority variant"
    )
    simple_transfer_gas: int = Field(default=21000, description="Gas limit of a plain transfer")
    contract_call_gas_limit: int = Field(default=50000, description="Gas limit for contract-call")
    timed_release_gas_limit: int = Field(default=75000, description="Gas limit for timed-release")

    # ======================
    # Safety Guards
    # ======================
    gas_reserve_eth: Decimal = Field(
        default=Decimal("0.003"), description="Balance always left untouched after a transfer"
    )
    dust_threshold_eth: Decimal = Field(
        default=Decimal("0.000001"), description="Amounts at or below this are refused"
    )
    divergence_tolerance_eth: Decimal = Field(
        default=Decimal("0.0001"), description="Max balance difference between two endpoints"
    )
    approval_rejection_probability: float = Field(
        default=0.1, description="Rejection probability of the simulated approval step"
    )
    lock_timeout: float = Field(default=30.0, description="Lock acquisition timeout (seconds)")

    # ======================
    # Display
    # ======================
    eth_price_usd: Decimal = Field(
        default=Decimal("3450"), description="Static ETH price for human-facing status output"
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8080, description="API server port")
    admin_token: str = Field(default="", description="Token required on withdrawal endpoints")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def rpc_url_list(self) -> list[str]:
        """Parse RPC URLs into an ordered list."""
        return [url.strip() for url in self.rpc_urls.split(",") if url.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_treasury_key(self) -> bool:
        """Check if the treasury key is configured."""
        return bool(self.treasury_private_key.strip())

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "treasury_key": "***" if self.has_treasury_key else "(not set)",
            "admin_token": "***" if self.admin_token else "(not set)",
            "payout_wallet": self.payout_wallet or "(not set)",
            "network": {
                "chain_id": self.chain_id,
                "rpc_urls": self.rpc_url_list,
                "receipt_timeout": self.receipt_timeout,
            },
            "fees": {
                "min_priority_fee_gwei": self.min_priority_fee_gwei,
                "default_base_fee_gwei": self.default_base_fee_gwei,
                "high_priority_fee_gwei": self.high_priority_fee_gwei,
            },
            "safety": {
                "gas_reserve_eth": str(self.gas_reserve_eth),
                "dust_threshold_eth": str(self.dust_threshold_eth),
                "divergence_tolerance_eth": str(self.divergence_tolerance_eth),
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
