"""
Identity bootstrap - stable network identity across restarts.

On first startup two random seeds are generated and persisted:
- "dht-seed": identity for peer discovery
- "rpc-seed": identity of the RPC server; its public key is the address
  clients dial and pin

Later startups reuse the stored seeds. A stored seed of the wrong length
is a fatal SeedLengthMismatch.
"""

from dataclasses import dataclass

from bidnet.core.errors import SeedLengthMismatch
from bidnet.core.storage.storage_manager import StorageManager
from bidnet.crypto import SEED_BYTES, KeyPair, generate_seed, keypair_from_seed, short_hex
from bidnet.utils.logger import get_logger

logger = get_logger("identity")

DHT_SEED_KEY = "dht-seed"
RPC_SEED_KEY = "rpc-seed"


@dataclass
class ServiceIdentity:
    """Key pairs of a running service."""
    dht_keypair: KeyPair
    rpc_keypair: KeyPair

    @property
    def public_key(self) -> bytes:
        """RPC public key, the service's address."""
        return self.rpc_keypair.public_key

    @property
    def public_key_hex(self) -> str:
        return self.rpc_keypair.public_key_hex


def load_or_create_seed(storage: StorageManager, key: str, length: int = SEED_BYTES) -> bytes:
    """
    Return the seed stored under ``key``, creating it on first use.

    Raises:
        SeedLengthMismatch: stored seed is not ``length`` bytes
    """
    seed = storage.get_seed(key)
    if seed is None:
        seed = generate_seed(length)
        storage.put_seed(key, seed)
        logger.info(f"Generated new {key}")
        return seed

    if len(seed) != length:
        raise SeedLengthMismatch(key, length, len(seed))

    return seed


def bootstrap_identity(storage: StorageManager, seed_bytes: int = SEED_BYTES) -> ServiceIdentity:
    """
    Resolve or create the service identity.

    Raises:
        SeedLengthMismatch: a stored seed is corrupt; the service must not start
    """
    if seed_bytes != SEED_BYTES:
        raise ValueError(f"seed_bytes must be {SEED_BYTES}, got {seed_bytes}")

    dht_seed = load_or_create_seed(storage, DHT_SEED_KEY, seed_bytes)
    rpc_seed = load_or_create_seed(storage, RPC_SEED_KEY, seed_bytes)

    identity = ServiceIdentity(
        dht_keypair=keypair_from_seed(dht_seed),
        rpc_keypair=keypair_from_seed(rpc_seed),
    )
    logger.info(f"Service identity: {short_hex(identity.public_key)}")
    return identity
