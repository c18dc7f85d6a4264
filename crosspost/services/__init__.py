"""Service layer exports."""

from .account_repository import AccountRepository
from .account_service import AccountService
from .auth_orchestrator import AuthOrchestrator
from .media_resolver import MediaResolver
from .publish_orchestrator import PublishOrchestrator
from .publish_repository import PublishRepository
from .publish_worker import PublishWorker
from .schedule_repository import ScheduledPostRepository
from .scheduler import SchedulerService
from .state_store import OAuthStateStore
from .token_cache import TokenCacheService
from .token_cipher import TokenCipherService

__all__ = [
    "AccountRepository",
    "AccountService",
    "AuthOrchestrator",
    "MediaResolver",
    "OAuthStateStore",
    "PublishOrchestrator",
    "PublishRepository",
    "PublishWorker",
    "ScheduledPostRepository",
    "SchedulerService",
    "TokenCacheService",
    "TokenCipherService",
]
