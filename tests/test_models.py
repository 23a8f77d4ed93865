"""Tests for mbox_archive.models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mbox_archive.models import EPOCH, ArchiveInfo, ImportResult, MessageSummary


def _summary(**overrides) -> MessageSummary:
    fields = {"message_id": "<a@example.com>", "offset": 100, "length": 50}
    fields.update(overrides)
    return MessageSummary(**fields)


class TestMessageSummary:
    def test_defaults(self):
        summary = _summary()
        assert summary.sender == ""
        assert summary.timestamp == EPOCH
        assert summary.has_attachments is False
        assert summary.corrupt is False
        assert summary.end == 150

    def test_frozen(self):
        summary = _summary()
        with pytest.raises(ValidationError):
            summary.subject = "changed"

    def test_rejects_negative_offset(self):
        with pytest.raises(ValidationError):
            _summary(offset=-1)

    @pytest.mark.parametrize(
        ("subject", "expected"),
        [
            ("Re: Lunch", "Lunch"),
            ("RE: Fwd: fw: Lunch", "Lunch"),
            ("Re:Re:  Lunch ", "Lunch"),
            ("Lunch: Re: menu", "Lunch: Re: menu"),
            ("", ""),
        ],
    )
    def test_normalized_subject(self, subject, expected):
        assert _summary(subject=subject).normalized_subject == expected

    @pytest.mark.parametrize(
        ("sender", "initials"),
        [
            ("Alice Example", "AE"),
            ("bob@example.com", "BO"),
            ("", ""),
        ],
    )
    def test_sender_initials(self, sender, initials):
        assert _summary(sender=sender).sender_initials == initials

    def test_json_round_trip_keeps_offsets(self):
        summary = _summary(subject="Hi", has_attachments=True)
        restored = MessageSummary.model_validate_json(summary.model_dump_json())
        assert restored == summary


class TestImportResult:
    def test_defaults(self):
        result = ImportResult(archive=ArchiveInfo(name="inbox", path="/data/inbox.mbox", size_bytes=10))
        assert result.total == 0
        assert result.cancelled is False
        assert result.archive.imported_at.tzinfo is not None
