from .credentials import CredentialsRepository
from .entries import EntriesRepository
from .monthly import MonthlyCacheRepository
from .outbox import OutboxRecord, OutboxRepository
from .response_cache import CachedResponse, ResponseCacheRepository

__all__ = [
    "CredentialsRepository",
    "EntriesRepository",
    "MonthlyCacheRepository",
    "OutboxRecord",
    "OutboxRepository",
    "CachedResponse",
    "ResponseCacheRepository",
]
