"""Tests for ledger domain types."""

import pytest

from transcoder.db.types import JobStatus, TranscodeJob


class TestJobStatus:
    """Tests for JobStatus transitions."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.PROCESSING),
            (JobStatus.PROCESSING, JobStatus.DONE),
            (JobStatus.PROCESSING, JobStatus.ERROR),
            (JobStatus.PROCESSING, JobStatus.PENDING),
            (JobStatus.PROCESSING, JobStatus.PROCESSING),
        ],
    )
    def test_allowed_transitions(self, current, target):
        assert current.can_transition_to(target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.DONE),
            (JobStatus.PENDING, JobStatus.ERROR),
            (JobStatus.DONE, JobStatus.PROCESSING),
            (JobStatus.ERROR, JobStatus.PROCESSING),
            (JobStatus.DONE, JobStatus.ERROR),
        ],
    )
    def test_forbidden_transitions(self, current, target):
        assert not current.can_transition_to(target)

    def test_terminal_states(self):
        assert JobStatus.DONE.is_terminal
        assert JobStatus.ERROR.is_terminal
        assert not JobStatus.PENDING.is_terminal
        assert not JobStatus.PROCESSING.is_terminal


class TestTranscodeJob:
    """Tests for TranscodeJob."""

    def test_claim_token_is_updated_on(self):
        job = TranscodeJob(
            path="/a.mkv",
            status=JobStatus.PROCESSING,
            created_on=100,
            updated_on=150,
            file_size=10,
        )
        assert job.claim_token == 150

    def test_to_dict(self):
        job = TranscodeJob(
            path="/a.mkv",
            status=JobStatus.ERROR,
            created_on=100,
            updated_on=150,
            file_size=10,
            error_message="boom",
        )

        assert job.to_dict() == {
            "path": "/a.mkv",
            "status": "error",
            "created_on": 100,
            "updated_on": 150,
            "file_size": 10,
            "error_message": "boom",
            "ffprobe_info": None,
        }
