"""
Build trigger decision engine.
"""

from cibot.services.builds.chain_limit import (
    apply_chain_limit,
    effective_verify_chain_limit,
    resolve_verify_chain_limit,
)
from cibot.services.builds.commit_selector import plan_push, reachability_sets
from cibot.services.builds.context import BuildContext
from cibot.services.builds.event_router import EventRouter
from cibot.services.builds.merge_gate import MergeGate
from cibot.services.builds.metadata_store import SqlMetadataStore
from cibot.services.builds.reporting import report_build_status
from cibot.services.builds.trigger import trigger_build

__all__ = [
    "BuildContext",
    "EventRouter",
    "MergeGate",
    "SqlMetadataStore",
    "apply_chain_limit",
    "effective_verify_chain_limit",
    "plan_push",
    "reachability_sets",
    "report_build_status",
    "resolve_verify_chain_limit",
    "trigger_build",
]
