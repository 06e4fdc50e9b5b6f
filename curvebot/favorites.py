from typing import List, Set
from .config import FAVORITES_KEY
from .helpers import norm_address
from .logging_setup import log
from .storage import KeyValueStorage

class Favorites:
    """Watched curve addresses (lowercased), persisted as a JSON array."""

    def __init__(self, storage: KeyValueStorage, key: str = FAVORITES_KEY):
        self.storage = storage
        self.key = key
        self._items: Set[str] = set()

    async def load(self):
        data = await self.storage.get(self.key)
        self._items = {norm_address(a) for a in data if isinstance(a, str)} if isinstance(data, list) else set()
        log.info(f"Loaded {len(self._items)} watched curve(s)")

    def is_favorite(self, address: str) -> bool:
        return norm_address(address) in self._items

    async def toggle(self, address: str) -> bool:
        """Returns True when the address is now watched."""
        key = norm_address(address)
        if key in self._items: self._items.discard(key)
        else: self._items.add(key)
        await self.storage.set(self.key, sorted(self._items))
        return key in self._items

    @property
    def addresses(self) -> List[str]:
        return sorted(self._items)

    def __len__(self): return len(self._items)
