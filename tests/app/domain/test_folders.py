"""Testes do classificador de pastas."""

from __future__ import annotations

import pytest

from app.domain.folders import FOLDERS, FolderPolicy, classify, filter_folder
from app.domain.identity import Identity
from app.domain.normalizer import normalize_email_doc

NOW_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z
MINUTE = 60_000

ADMIN = Identity("admin@empresa.com", is_admin=True)
ANA = Identity("ana@empresa.com")


def _scheduled(status: str | None = None, send_offset_ms: int | None = None, **extra):
    data = {"type": "scheduled", "createdAt": "2025-12-31T00:00:00Z", **extra}
    if status is not None:
        data["status"] = status
    if send_offset_ms is not None:
        data["scheduledSendTime"] = NOW_MS + send_offset_ms
    return normalize_email_doc("s1", data)


class TestScheduledFolder:
    def test_pending_approval_in_future_is_visible(self) -> None:
        record = _scheduled("pending_approval", send_offset_ms=10 * MINUTE)
        assert classify(record, "scheduled", now_ms=NOW_MS) is True

    def test_statusless_created_two_minutes_ago_is_visible(self) -> None:
        record = _scheduled(send_offset_ms=-2 * MINUTE)
        assert classify(record, "scheduled", now_ms=NOW_MS) is True

    def test_statusless_past_grace_is_hidden(self) -> None:
        record = _scheduled(send_offset_ms=-6 * MINUTE)
        assert classify(record, "scheduled", now_ms=NOW_MS) is False

    def test_statusless_without_send_time_is_orphan(self) -> None:
        assert classify(_scheduled(), "scheduled", now_ms=NOW_MS) is False

    def test_approved_within_grace_is_visible(self) -> None:
        assert classify(_scheduled("approved", send_offset_ms=-30_000), "scheduled", now_ms=NOW_MS)
        assert not classify(_scheduled("approved", send_offset_ms=-2 * MINUTE), "scheduled", now_ms=NOW_MS)

    def test_sending_hidden_only_when_stale(self) -> None:
        assert classify(_scheduled("sending", send_offset_ms=-1 * MINUTE), "scheduled", now_ms=NOW_MS)
        assert not classify(_scheduled("sending", send_offset_ms=-6 * MINUTE), "scheduled", now_ms=NOW_MS)

    @pytest.mark.parametrize("status", ["sent", "delivered", "error", "rejected"])
    def test_terminal_statuses_are_hidden(self, status: str) -> None:
        record = _scheduled(status, send_offset_ms=10 * MINUTE)
        assert classify(record, "scheduled", now_ms=NOW_MS) is False

    def test_deleted_is_hidden(self) -> None:
        record = _scheduled("pending", send_offset_ms=MINUTE, deleted=True)
        assert classify(record, "scheduled", now_ms=NOW_MS) is False

    def test_policy_windows_are_configurable(self) -> None:
        record = _scheduled(send_offset_ms=-6 * MINUTE)
        policy = FolderPolicy(statusless_grace_ms=10 * MINUTE)
        assert classify(record, "scheduled", now_ms=NOW_MS, policy=policy) is True


class TestOtherFolders:
    def test_scheduled_record_is_never_sent(self) -> None:
        record = _scheduled("pending", send_offset_ms=MINUTE)
        assert classify(record, "sent", now_ms=NOW_MS) is False

    def test_inbound_provider_goes_to_inbox(self) -> None:
        record = normalize_email_doc("r1", {"provider": "gmail_api"})
        assert classify(record, "inbox") is True
        assert classify(record, "sent") is False

    def test_sent_by_status(self) -> None:
        record = normalize_email_doc("x1", {"type": "sequence", "status": "sent"})
        assert classify(record, "sent") is True

    def test_trash_is_exactly_deleted(self) -> None:
        records = [
            normalize_email_doc("a", {"type": "sent", "deleted": True}),
            normalize_email_doc("b", {"type": "received", "deleted": True, "starred": True}),
            normalize_email_doc("c", {"type": "sent"}),
        ]
        assert [r.id for r in filter_folder(records, "trash")] == ["a", "b"]
        assert filter_folder(records, "starred") == []
        assert all(not classify(r, "inbox") for r in records if r.deleted)

    def test_unknown_folder_raises(self) -> None:
        record = normalize_email_doc("a", {"type": "sent"})
        with pytest.raises(ValueError, match="Pasta desconhecida"):
            classify(record, "archive")  # type: ignore[arg-type]


class TestIdentityScoping:
    def test_scoped_identity_sees_only_owned_or_assigned(self) -> None:
        records = [
            normalize_email_doc("own", {"type": "sent", "ownerId": "Ana@Empresa.com"}),
            normalize_email_doc("asg", {"type": "sent", "assignedTo": "ana@empresa.com"}),
            normalize_email_doc("other", {"type": "sent", "ownerId": "bob@empresa.com"}),
        ]
        assert {r.id for r in filter_folder(records, "sent", ANA)} == {"own", "asg"}
        assert len(filter_folder(records, "sent", ADMIN)) == 3

    def test_every_folder_is_known(self) -> None:
        assert set(FOLDERS) == {"inbox", "sent", "scheduled", "starred", "trash"}
