"""Pool registry: creates pools and their coordinators and looks them up by key."""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from zylith.clmm.pool import Pool
from zylith.config import Settings, get_settings
from zylith.core.coordinator import ProofCoordinator
from zylith.core.events import EventBus
from zylith.core.merkle_tree import TREE_DEPTH
from zylith.core.operations import VerificationOracle
from zylith.crypto.signatures import load_public_key
from zylith.exceptions import (
    InvalidTokenPairError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
)
from zylith.pool.controller import PoolController
from zylith.pool.key import PoolKey
from zylith.pool.token import Token

logger = logging.getLogger(__name__)


@dataclass
class PoolEntry:
    key: PoolKey
    controller: PoolController
    coordinator: ProofCoordinator

    @property
    def pool(self) -> Pool:
        return self.controller.pool


class PoolRegistry:
    """
    Owner of every pool in the process.

    Each pool gets its own engine, controller, lock and coordinator; pools
    share nothing mutable except the token ledgers and the event bus.

    Args:
        oracle: Verification oracle handed to every coordinator
        settings: Runtime settings; defaults to ``get_settings()``
        event_bus: Bus shared by all coordinators
        tree_depth: Accumulator depth (TREE_DEPTH outside of tests)
    """

    def __init__(
        self,
        oracle: VerificationOracle,
        settings: Optional[Settings] = None,
        event_bus: Optional[EventBus] = None,
        tree_depth: int = TREE_DEPTH,
    ):
        self.oracle = oracle
        self.settings = settings or get_settings()
        self.events = event_bus or EventBus()
        self.tree_depth = tree_depth
        self.tokens: Dict[int, Token] = {}
        self._pools: Dict[PoolKey, PoolEntry] = {}
        self._lock = threading.Lock()
        self._root_publisher_key = (
            load_public_key(self.settings.root_publisher_public_key)
            if self.settings.root_publisher_public_key
            else None
        )

    def register_token(self, token: Token) -> None:
        self.tokens[token.address] = token

    def create_pool(
        self,
        token_a: int,
        token_b: int,
        fee: int,
        sqrt_price_x96: Optional[int] = None,
    ) -> PoolEntry:
        """
        Create a pool and its coordinator.

        Args:
            token_a: One token identifier
            token_b: The other token identifier
            fee: Fee tier
            sqrt_price_x96: Optional starting price

        Raises:
            PoolAlreadyInitializedError: If the pool already exists
            InvalidTokenPairError: If a token is not registered
        """
        key = PoolKey.canonical(token_a, token_b, fee)
        for address in (key.token0, key.token1):
            if address not in self.tokens:
                raise InvalidTokenPairError(f"Token {address:#x} is not registered")

        with self._lock:
            if key in self._pools:
                raise PoolAlreadyInitializedError(f"Pool {key.pool_id} already exists")
            pool = Pool(
                key.token0,
                key.token1,
                key.fee,
                max_swap_iterations=self.settings.max_swap_iterations,
                protocol_fee_denominator=self.settings.protocol_fee_denominator,
            )
            controller = PoolController(
                pool,
                self.tokens[key.token0],
                self.tokens[key.token1],
                admin=self.settings.admin_address,
            )
            coordinator = ProofCoordinator(
                controller,
                self.oracle,
                tree_depth=self.tree_depth,
                root_history_size=self.settings.root_history_size,
                admin=self.settings.admin_address,
                root_publisher_key=self._root_publisher_key,
                event_bus=self.events,
            )
            entry = PoolEntry(key, controller, coordinator)
            self._pools[key] = entry

        if sqrt_price_x96 is not None:
            controller.initialize(sqrt_price_x96)
        logger.info(f"Created pool {key.pool_id}")
        return entry

    def get(self, key: Union[PoolKey, str]) -> PoolEntry:
        """
        Look up a pool by key or pool id.

        Raises:
            PoolNotInitializedError: If no such pool exists
        """
        if isinstance(key, str):
            key = PoolKey.from_id(key)
        entry = self._pools.get(key)
        if entry is None:
            raise PoolNotInitializedError(f"Pool {key.pool_id} does not exist")
        return entry

    def find(self, token_a: int, token_b: int, fee: int) -> PoolEntry:
        return self.get(PoolKey.canonical(token_a, token_b, fee))

    def pools(self) -> List[PoolEntry]:
        return list(self._pools.values())

    def __contains__(self, key: PoolKey) -> bool:
        return key in self._pools

    def __len__(self) -> int:
        return len(self._pools)
