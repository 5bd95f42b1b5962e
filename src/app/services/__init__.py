"""Serviços de aplicação.

Orquestração da lista de emails (sem IO direto além dos colaboradores
injetados). Implementações concretas de IO ficam em app/infra/.
"""

from app.services.email_list import EmailList
from app.services.email_sync import EmailSyncSession, LoadMoreResult
from app.services.events import EmailsEvent, EmailsEventBus, UpdateNotifier
from app.services.folder_counts import FolderCountCache
from app.services.realtime_merger import Feed, RealtimeMerger
from app.services.scheduled_reconciliation import (
    ReconcileAction,
    ReconcileReport,
    ScheduledReconciler,
)
from app.services.throttling import CacheWriteThrottle

__all__ = [
    "CacheWriteThrottle",
    "EmailList",
    "EmailSyncSession",
    "EmailsEvent",
    "EmailsEventBus",
    "Feed",
    "FolderCountCache",
    "LoadMoreResult",
    "RealtimeMerger",
    "ReconcileAction",
    "ReconcileReport",
    "ScheduledReconciler",
    "UpdateNotifier",
]
