from __future__ import annotations
from rq import Queue
from redis import Redis
from credit_ledger.config import settings

_redis = Redis.from_url(settings.redis_url)
q = Queue("default", connection=_redis)

def get_queue() -> Queue:
    return q
