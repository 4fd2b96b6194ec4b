"""Composition root: wires settings, provider clients and services."""
from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

import httpx
from sqlalchemy.engine import Engine

from app.config import Settings, get_settings
from app.core.logging import configure_logging
from app.services.metadata_publisher import MetadataPublisher
from app.services.mint_service import MintOrchestrator
from app.services.nft_reader import NFTReader
from app.services.tx_poller import TransactionPoller
from app.services.tx_submitter import TransactionSubmitter
from app.services.wallet_service import WalletService
from chain.chains import ChainRegistry
from chain.receipts import ReceiptParser
from chain.rpc import ChainRpc
from db.session import init_db, make_engine, make_session_factory
from db.user_store import InMemoryUserStore, SqlUserStore, UserStore
from providers.pinata_api import PinataClient
from providers.transactions_api import SponsorshipClient
from providers.wallets_api import WalletProviderClient

logger = logging.getLogger(__name__)


def build_user_store(settings: Settings) -> Tuple[UserStore, Optional[Engine]]:
    """Pick the ledger backing. The engine, when there is one, belongs to the caller."""
    if not settings.DATABASE_URL:
        logger.info("ledger backend=memory")
        return InMemoryUserStore(), None

    engine = make_engine(
        settings.DATABASE_URL,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    init_db(engine)
    logger.info("ledger backend=sql dialect=%s", engine.dialect.name)
    return SqlUserStore(make_session_factory(engine)), engine


@asynccontextmanager
async def open_orchestrator(
    settings: Settings | None = None,
    *,
    users: UserStore | None = None,
    circle_http: httpx.AsyncClient | None = None,
    pinata_http: httpx.AsyncClient | None = None,
    rpc: ChainRpc | None = None,
) -> AsyncIterator[MintOrchestrator]:
    """
    Build a MintOrchestrator. On exit the HTTP and RPC clients are closed
    and the ledger engine is disposed.
    Injected clients are left open for their owner to close.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    if not settings.CIRCLE_CONFIGURED:
        logger.warning("circle credentials not configured; provider calls will be rejected")

    chains = ChainRegistry(settings)
    if not chains.list_mintable():
        logger.warning("no NFT contract configured; set NFT_CONTRACT_ADDRESSES")

    async with AsyncExitStack() as stack:
        circle_kwargs = dict(
            base_url=settings.circle_base_url,
            api_key=settings.circle_api_key,
            entity_secret_ciphertext=settings.circle_entity_secret_ciphertext,
            timeout_s=settings.http_timeout_s,
            http=circle_http,
        )
        wallets_api = WalletProviderClient(
            wallet_set_id=settings.circle_wallet_set_id, **circle_kwargs
        )
        stack.push_async_callback(wallets_api.aclose)
        tx_api = SponsorshipClient(**circle_kwargs)
        stack.push_async_callback(tx_api.aclose)

        pinning = None
        if settings.PINATA_CONFIGURED:
            pinning = PinataClient(
                api_key=settings.pinata_api_key,
                secret_key=settings.pinata_secret_key,
                base_url=settings.pinata_base_url,
                timeout_s=settings.http_timeout_s,
                http=pinata_http,
            )
            stack.push_async_callback(pinning.aclose)

        if rpc is None:
            chain_rpc = ChainRpc(chains)
            stack.push_async_callback(chain_rpc.aclose)
            rpc = chain_rpc

        if users is None:
            users, engine = build_user_store(settings)
            if engine is not None:
                stack.callback(engine.dispose)

        yield MintOrchestrator(
            settings,
            users=users,
            chains=chains,
            wallets=WalletService(users, wallets_api),
            balances=wallets_api,
            publisher=MetadataPublisher(
                pinning,
                gateway=settings.ipfs_gateway,
                require_pinning=settings.metadata_require_pinning,
            ),
            submitter=TransactionSubmitter(
                tx_api, gas_limit=settings.gas_limit, fee_level=settings.fee_level
            ),
            poller=TransactionPoller(
                tx_api,
                max_wait_ms=settings.tx_max_wait_ms,
                poll_interval_ms=settings.tx_poll_interval_ms,
            ),
            receipts=ReceiptParser(rpc, mint_event_name=settings.mint_event_name),
            reader=NFTReader(chains, rpc),
        )
