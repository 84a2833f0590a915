from .artifacts import ArtifactSet, generate_artifacts
from .notifications import JobEvent, LogNotifier, RabbitMQNotifier
from .persistence import InMemoryJobAdapter, SqlAlchemyJobAdapter, sample_jobs
from .storage import PresignedShareLinkFactory, TokenShareLinkFactory
from .store import JobFilter, JobStore

__all__ = [
    "ArtifactSet",
    "generate_artifacts",
    "JobEvent",
    "LogNotifier",
    "RabbitMQNotifier",
    "InMemoryJobAdapter",
    "SqlAlchemyJobAdapter",
    "sample_jobs",
    "PresignedShareLinkFactory",
    "TokenShareLinkFactory",
    "JobFilter",
    "JobStore",
]
