"""
Dispatch pipeline: subscriber resolution, fan-out, per-subscriber processing
and job provisioning.
"""

from backend_indexer.dispatcher.capabilities import build_dispatcher_config
from backend_indexer.dispatcher.dispatcher import (
    MODE_QUEUE,
    MODE_SYNC,
    Dispatcher,
    DispatcherConfig,
    DispatchResult,
)
from backend_indexer.dispatcher.processing import SubscriberResult, process_webhook_data
from backend_indexer.dispatcher.provisioning import ProvisionResult, provision_job, stop_job

__all__ = [
    "MODE_QUEUE",
    "MODE_SYNC",
    "DispatchResult",
    "Dispatcher",
    "DispatcherConfig",
    "ProvisionResult",
    "SubscriberResult",
    "build_dispatcher_config",
    "process_webhook_data",
    "provision_job",
    "stop_job",
]
