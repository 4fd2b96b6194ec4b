from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # logging
    log_level: str = "INFO"
    log_json: bool = False

    # ledger (empty -> in-memory store)
    database_url: str = ""
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Circle programmable wallets / gas station
    circle_api_key: str = ""
    circle_base_url: str = "https://api.circle.com"
    circle_wallet_set_id: str = ""
    circle_entity_secret_ciphertext: str = ""
    http_timeout_s: float = 30.0

    # metadata storage
    pinata_api_key: str = ""
    pinata_secret_key: str = ""
    pinata_base_url: str = "https://api.pinata.cloud"
    ipfs_gateway: str = "https://ipfs.io/ipfs/"
    metadata_require_pinning: bool = False

    # chains, JSON objects keyed by blockchain name
    default_blockchain: str = "ETH-SEPOLIA"
    rpc_urls: str = ""
    nft_contract_addresses: str = ""
    usdc_addresses: str = ""

    # sponsored transactions
    tx_max_wait_ms: int = 120_000
    tx_poll_interval_ms: int = 3_000
    gas_limit: str = "500000"
    batch_gas_limit: str = "2000000"
    fee_level: str = "MEDIUM"

    # minting
    mint_event_name: str = "NFTMinted"
    metadata_storage_cost: str = "1"  # USDC
    batch_mint_delay_ms: int = 1_000
    max_batch_size: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def DATABASE_URL(self) -> str:
        return self.database_url

    @property
    def CIRCLE_CONFIGURED(self) -> bool:
        return bool(self.circle_api_key and self.circle_wallet_set_id)

    @property
    def PINATA_CONFIGURED(self) -> bool:
        return bool(self.pinata_api_key and self.pinata_secret_key)


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader (process-level).
    """
    return Settings()
