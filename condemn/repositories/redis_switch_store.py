from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from condemn.domain.models import SwitchRecord, to_epoch
from condemn.logging_utils import log_event, redact_sensitive_text
from condemn.observability import events
from condemn.repositories.switch_store import StoreError, StoreUnavailable

DEFAULT_KEY_PREFIX = "condemn"
DUE_PAGE_SIZE = 500

# KEYS: deadlines zset, switches hash. ARGV: cutoff score, names...
# A name is removed only while its score is still <= cutoff, so a renewal that
# landed after the scan keeps its switch.
CLAIM_SCRIPT = """
local claimed = {}
local cutoff = tonumber(ARGV[1])
for i = 2, #ARGV do
  local name = ARGV[i]
  local score = redis.call('ZSCORE', KEYS[1], name)
  if score and tonumber(score) <= cutoff then
    redis.call('ZREM', KEYS[1], name)
    redis.call('HDEL', KEYS[2], name)
    table.insert(claimed, name)
  end
end
return claimed
"""

# KEYS: deadlines zset, switches hash. ARGV: name.
TAKE_SCRIPT = """
local record = redis.call('HGET', KEYS[2], ARGV[1])
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('HDEL', KEYS[2], ARGV[1])
return record
"""


class RedisSwitchStore:
    """Sorted set of deadlines plus a hash of JSON records, both keyed by name."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.deadlines_key = f"{key_prefix}:deadlines"
        self.switches_key = f"{key_prefix}:switches"
        self.logger = logger or logging.getLogger("condemn.store.redis")
        self._claim_script = client.register_script(CLAIM_SCRIPT)
        self._take_script = client.register_script(TAKE_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        timeout_sec: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> RedisSwitchStore:
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_sec,
            socket_connect_timeout=timeout_sec,
            decode_responses=True,
        )
        return cls(client, key_prefix=key_prefix, logger=logger)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailable(
                f"redis {operation} failed: {redact_sensitive_text(exc)}"
            ) from exc
        except RedisError as exc:
            raise StoreError(f"redis {operation} failed: {redact_sensitive_text(exc)}") from exc

    def _decode(self, raw: str | None) -> SwitchRecord | None:
        if raw is None:
            return None
        try:
            return SwitchRecord.from_dict(json.loads(raw))
        except ValueError as exc:
            self.logger.warning(
                log_event(events.STORE_DECODE_FAILED, error=str(exc), data=raw)
            )
            return None

    def upsert(self, record: SwitchRecord) -> None:
        payload = json.dumps(record.to_dict(), ensure_ascii=False, sort_keys=True)
        with self._translate_errors("upsert"):
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(self.switches_key, record.name, payload)
            pipe.zadd(self.deadlines_key, {record.name: record.score})
            pipe.execute()

    def due_before(self, timestamp: datetime) -> Iterator[str]:
        cutoff = to_epoch(timestamp)
        offset = 0
        while True:
            with self._translate_errors("due_before"):
                page = self.client.zrangebyscore(
                    self.deadlines_key,
                    "-inf",
                    cutoff,
                    start=offset,
                    num=DUE_PAGE_SIZE,
                )
            yield from page
            if len(page) < DUE_PAGE_SIZE:
                return
            offset += len(page)

    def metadata_of(self, names: Iterable[str]) -> dict[str, SwitchRecord]:
        keys = list(dict.fromkeys(names))
        if not keys:
            return {}
        with self._translate_errors("metadata_of"):
            values = self.client.hmget(self.switches_key, keys)

        records: dict[str, SwitchRecord] = {}
        for name, raw in zip(keys, values):
            record = self._decode(raw)
            if record is not None:
                records[name] = record
        return records

    def claim(self, names: Iterable[str], *, cutoff: datetime) -> set[str]:
        args = list(dict.fromkeys(names))
        if not args:
            return set()
        with self._translate_errors("claim"):
            claimed = self._claim_script(
                keys=[self.deadlines_key, self.switches_key],
                args=[to_epoch(cutoff), *args],
            )
        return {str(name) for name in claimed or []}

    def take(self, name: str) -> SwitchRecord | None:
        with self._translate_errors("take"):
            raw = self._take_script(
                keys=[self.deadlines_key, self.switches_key],
                args=[name],
            )
        return self._decode(raw)

    def all(self) -> list[SwitchRecord]:
        with self._translate_errors("all"):
            values = self.client.hgetall(self.switches_key)
        records = [record for record in map(self._decode, values.values()) if record is not None]
        return sorted(records, key=lambda record: (record.score, record.name))

    def ping(self) -> None:
        with self._translate_errors("ping"):
            self.client.ping()

    def close(self) -> None:
        self.client.close()
