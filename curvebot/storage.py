import asyncio, json, os
from typing import Any, Dict, Optional, Protocol
from .config import STATE_DIR
from .logging_setup import log

class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any) -> None: ...

class JsonFileStorage:
    """One JSON file per key under `root`. Read errors yield None, write errors are logged and skipped."""

    def __init__(self, root: str = STATE_DIR):
        self.root = root
        self._lock = asyncio.Lock()

    def _path(self, key: str) -> str:
        return os.path.join(self.root, f"{key}.json")

    async def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            log.info(f"No {os.path.basename(path)} found; starting fresh.")
        except Exception:
            log.exception(f"Failed to load {path}")
        return None

    async def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        async with self._lock:
            try:
                os.makedirs(self.root, exist_ok=True)
                tmp = path + ".tmp"
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(value, f, ensure_ascii=False, indent=2)
                os.replace(tmp, path)
            except Exception:
                log.exception(f"Failed to save {path}; write skipped")

class MemoryStorage:
    """In-process storage; values are round-tripped through JSON like the file backend."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, str] = {k: json.dumps(v) for k, v in (initial or {}).items()}
        self.writes = 0

    async def get(self, key: str) -> Optional[Any]:
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = json.dumps(value)
        self.writes += 1
