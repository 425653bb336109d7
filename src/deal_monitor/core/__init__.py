"""Core domain layer."""

from deal_monitor.core.alerts import AlertMatcher, AlertSubscription
from deal_monitor.core.baseline import Baseline
from deal_monitor.core.detector import (
    DEALS_RULES,
    FREE_DEALS_RULES,
    RSS_RULES,
    AbsenceMode,
    ChangeDetector,
    PipelineRules,
    ReconcileResult,
)
from deal_monitor.core.dispatcher import NotificationDispatcher
from deal_monitor.core.entities import Article, Deal, FreeDeal, Item, ItemState, NotificationRefs
from deal_monitor.core.interfaces import DocumentStore, ItemSource, NotificationTransport
from deal_monitor.core.messages import Message, build_message
from deal_monitor.core.policy import UpdatePolicy, UpdateQuota, threshold
from deal_monitor.core.rate_limit import RateLimiter
from deal_monitor.core.registry import SourceProfile, SourceRegistry

__all__ = [
    "Item",
    "Deal",
    "FreeDeal",
    "Article",
    "ItemState",
    "NotificationRefs",
    "ItemSource",
    "DocumentStore",
    "NotificationTransport",
    "Message",
    "build_message",
    "Baseline",
    "SourceProfile",
    "SourceRegistry",
    "UpdatePolicy",
    "UpdateQuota",
    "threshold",
    "AbsenceMode",
    "PipelineRules",
    "DEALS_RULES",
    "FREE_DEALS_RULES",
    "RSS_RULES",
    "ChangeDetector",
    "ReconcileResult",
    "NotificationDispatcher",
    "AlertMatcher",
    "AlertSubscription",
    "RateLimiter",
]
