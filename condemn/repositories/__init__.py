"""Switch persistence layer."""
from condemn.repositories.json_switch_store import JsonSwitchStore
from condemn.repositories.memory_switch_store import MemorySwitchStore
from condemn.repositories.redis_switch_store import RedisSwitchStore
from condemn.repositories.switch_store import StoreError, StoreUnavailable, SwitchStore

__all__ = [
    "JsonSwitchStore",
    "MemorySwitchStore",
    "RedisSwitchStore",
    "StoreError",
    "StoreUnavailable",
    "SwitchStore",
]
