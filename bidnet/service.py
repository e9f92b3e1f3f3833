"""
AuctionService - wires storage, identity, engine, dispatcher and server.

Every collaborator is constructed here and passed down explicitly; nothing
in bidnet keeps process-wide state.
"""

from dataclasses import dataclass

from bidnet.core.auction.engine import AuctionEngine
from bidnet.core.config import ServiceConfig
from bidnet.core.identity import ServiceIdentity, bootstrap_identity
from bidnet.core.storage import AuctionStore, MemoryAuctionStore, SQLiteAuctionStore, StorageManager
from bidnet.network.dispatcher import OperationDispatcher
from bidnet.network.server import RPCServer, ServerConfig
from bidnet.utils.logger import get_logger

logger = get_logger("service")


@dataclass
class AuctionService:
    """A fully assembled auction service."""
    config: ServiceConfig
    storage: StorageManager
    identity: ServiceIdentity
    store: AuctionStore
    engine: AuctionEngine
    dispatcher: OperationDispatcher
    server: RPCServer

    @classmethod
    def build(cls, config: ServiceConfig, in_memory: bool = False) -> "AuctionService":
        """
        Assemble the service from configuration.

        The identity is always loaded from (or created in) the on-disk
        database so the public key survives restarts; ``in_memory`` only
        keeps auction records out of it.

        Raises:
            SeedLengthMismatch: stored identity seed is corrupt
        """
        config.ensure_dirs()
        storage = StorageManager(config.data_dir, config.db_name)
        try:
            identity = bootstrap_identity(storage, config.seed_bytes)
        except Exception:
            storage.close()
            raise

        store: AuctionStore = MemoryAuctionStore() if in_memory else SQLiteAuctionStore(storage)
        engine = AuctionEngine(store)
        dispatcher = OperationDispatcher(engine)
        server = RPCServer(
            dispatcher,
            identity.rpc_keypair,
            ServerConfig(host=config.host, port=config.port, max_body_size=config.max_body_size),
        )
        return cls(
            config=config,
            storage=storage,
            identity=identity,
            store=store,
            engine=engine,
            dispatcher=dispatcher,
            server=server,
        )

    @property
    def public_key_hex(self) -> str:
        return self.identity.public_key_hex

    @property
    def port(self) -> int:
        return self.server.port

    async def start(self) -> None:
        await self.server.start()

    async def stop(self, close_storage: bool = True) -> None:
        await self.server.stop()
        if close_storage:
            self.storage.close()
        logger.info("Auction service stopped")
