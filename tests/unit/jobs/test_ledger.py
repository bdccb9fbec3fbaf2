"""Tests for the .enc_queue completion ledger."""

from unittest.mock import patch

from veq.domain.models import JobStatus
from veq.jobs import load_ledger, save_ledger
from veq.jobs.ledger import (
    LEDGER_HEADER,
    format_ledger,
    ledger_path,
    parse_completed,
)


class TestFormatLedger:
    """Tests for format_ledger."""

    def test_layout(self, make_job):
        """Done and skipped jobs are commented out, the rest are not."""
        jobs = [
            make_job("done.mkv", status=JobStatus.DONE),
            make_job("exists.mkv", status=JobStatus.SKIPPED),
            make_job("pending.mkv"),
            make_job("failed.mkv", status=JobStatus.FAILED),
        ]
        assert format_ledger(jobs).splitlines() == [
            LEDGER_HEADER,
            "# done.mkv",
            "# exists.mkv (skipped - output exists)",
            "pending.mkv",
            "failed.mkv",
        ]

    def test_empty_queue(self):
        """An empty queue still writes the header."""
        assert format_ledger([]) == LEDGER_HEADER + "\n"


class TestParseCompleted:
    """Tests for parse_completed."""

    def test_names(self):
        """Commented names are completed; the header and plain lines are not."""
        text = "\n".join(
            [
                LEDGER_HEADER,
                "# done.mkv",
                "#   spaced.mkv  ",
                "# exists.mkv (skipped - output exists)",
                "pending.mkv",
                "",
                "#",
            ]
        )
        assert parse_completed(text) == {"done.mkv", "spaced.mkv", "exists.mkv"}

    def test_parenthesis_in_name_kept(self):
        """Only the skip annotation is stripped from names."""
        text = "# Movie (2019).mkv\n# Show (2020).mkv (skipped - output exists)\n"
        assert parse_completed(text) == {"Movie (2019).mkv", "Show (2020).mkv"}


class TestLoadLedger:
    """Tests for save_ledger and load_ledger."""

    def test_missing_ledger(self, temp_dir, make_job):
        """Without a ledger nothing changes."""
        job = make_job()
        assert load_ledger(temp_dir, [job]) == 0
        assert job.status is JobStatus.PENDING

    def test_marks_completed_jobs_done(self, temp_dir, make_job):
        """Jobs whose names are commented out become Done."""
        save_ledger(
            temp_dir,
            [
                make_job("a.mkv", status=JobStatus.DONE),
                make_job("b.mkv"),
            ],
        )
        fresh = [make_job("a.mkv"), make_job("b.mkv")]

        assert load_ledger(temp_dir, fresh) == 1
        assert fresh[0].status is JobStatus.DONE
        assert fresh[0].progress_pct == 100.0
        assert fresh[1].status is JobStatus.PENDING

    def test_hand_edited_ledger(self, temp_dir, make_job):
        """A user commenting out a line marks that job done."""
        ledger_path(temp_dir).write_text(f"{LEDGER_HEADER}\n# b.mkv\nc.mkv\n")
        jobs = [make_job("b.mkv"), make_job("c.mkv")]
        assert load_ledger(temp_dir, jobs) == 1
        assert jobs[0].status is JobStatus.DONE

    def test_already_done_not_counted(self, temp_dir, make_job):
        """Jobs that are already Done are not counted again."""
        job = make_job("a.mkv", status=JobStatus.DONE)
        save_ledger(temp_dir, [job])
        assert load_ledger(temp_dir, [job]) == 0

    def test_save_failure(self, temp_dir, make_job):
        """Write errors are reported as False."""
        with patch(
            "veq.jobs.ledger.atomic_write_text", side_effect=OSError("read-only")
        ):
            assert save_ledger(temp_dir, [make_job()]) is False
