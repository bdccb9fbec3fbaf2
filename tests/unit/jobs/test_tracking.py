"""Tests for consumer-side progress tracking."""

import pytest

from veq.domain.models import JobStatus
from veq.jobs import (
    JobCompleted,
    JobFailed,
    JobStarted,
    ProgressUpdate,
    WorkerIdle,
    apply_message,
)
from veq.jobs.tracking import (
    raw_eta_seconds,
    update_displayed_eta,
    update_smoothed_speed,
)


def _progress(job, pct, out_time=0.0, status=JobStatus.RUNNING, speed=None):
    return ProgressUpdate(
        job_id=job.id,
        progress_pct=pct,
        out_time_s=out_time,
        fps=30.0,
        speed=speed,
        bitrate_kbps=1500.0,
        size_bytes=1024,
        vmaf_result=None,
        vmaf_target=None,
        status=status,
    )


class TestSmoothedSpeed:
    """Tests for the EWMA speed estimate."""

    def test_first_sample_taken_as_is(self, make_job):
        """The first positive sample seeds the average."""
        job = make_job()
        update_smoothed_speed(job, 1.0, now=100.0)
        assert job.smoothed_speed == 1.0
        assert job.last_speed_update == 100.0

    def test_samples_within_interval_ignored(self, make_job):
        """Samples closer than the sample interval do not move the average."""
        job = make_job()
        update_smoothed_speed(job, 1.0, now=100.0)
        update_smoothed_speed(job, 3.0, now=101.0)
        assert job.smoothed_speed == 1.0
        assert job.speed == 3.0

    def test_ewma_after_interval(self, make_job):
        """A later sample is blended with weight 0.1."""
        job = make_job()
        update_smoothed_speed(job, 1.0, now=100.0)
        update_smoothed_speed(job, 2.0, now=102.0)
        assert job.smoothed_speed == pytest.approx(1.1)
        assert job.last_speed_update == 102.0

    def test_zero_and_missing_ignored(self, make_job):
        """Unknown or zero speed leaves the average alone."""
        job = make_job()
        update_smoothed_speed(job, None, now=1.0)
        update_smoothed_speed(job, 0.0, now=5.0)
        assert job.smoothed_speed is None


class TestEta:
    """Tests for ETA estimation and hysteresis."""

    def test_raw_eta(self, make_job):
        """Remaining output time is divided by the smoothed speed."""
        job = make_job(duration_s=100.0)
        job.out_time_s = 40.0
        job.smoothed_speed = 2.0
        assert raw_eta_seconds(job) == 30

    def test_raw_eta_unknown(self, make_job):
        """Without a duration or speed there is no estimate."""
        job = make_job()
        job.smoothed_speed = 2.0
        assert raw_eta_seconds(job) is None
        job = make_job(duration_s=100.0)
        assert raw_eta_seconds(job) is None

    def test_small_change_kept(self, make_job):
        """A change of two seconds and under five percent is not shown."""
        job = make_job(duration_s=1000.0)
        job.displayed_eta_seconds = 100
        job.smoothed_speed = 1000.0 / 102.0
        assert update_displayed_eta(job) == 100

    def test_large_change_applied(self, make_job):
        """A change of more than two seconds replaces the displayed ETA."""
        job = make_job(duration_s=1000.0)
        job.displayed_eta_seconds = 100
        job.smoothed_speed = 10.0
        assert update_displayed_eta(job) == 100
        job.smoothed_speed = 1000.0 / 103.0
        assert update_displayed_eta(job) == 103

    def test_relative_change_applied(self, make_job):
        """Short ETAs move once the change exceeds five percent."""
        job = make_job(duration_s=11.0)
        job.displayed_eta_seconds = 10
        job.smoothed_speed = 1.0
        assert update_displayed_eta(job) == 11

    def test_first_estimate_shown(self, make_job):
        """With nothing displayed the first estimate is taken directly."""
        job = make_job(duration_s=60.0)
        job.smoothed_speed = 2.0
        assert update_displayed_eta(job) == 30
        assert job.displayed_eta_seconds == 30


class TestApplyMessage:
    """Tests for apply_message."""

    def test_started_marks_running(self, make_job):
        """JobStarted moves a pending job to Running and counts the attempt."""
        job = make_job()
        changed = apply_message({job.id: job}, JobStarted(job.id), now=5.0)
        assert changed is job
        assert job.status is JobStatus.RUNNING
        assert job.attempts == 1
        assert job.started_at == 5.0

    def test_progress_applied(self, make_job):
        """Progress fields are copied onto the consumer's job."""
        job = make_job(duration_s=100.0)
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(jobs, _progress(job, 40.0, 40.0, speed=2.0), now=1.0)
        assert job.progress_pct == 40.0
        assert job.out_time_s == 40.0
        assert job.fps == 30.0
        assert job.size_bytes == 1024
        assert job.smoothed_speed == 2.0
        assert job.displayed_eta_seconds == 30

    def test_progress_monotonic_while_running(self, make_job):
        """A lower percentage in the same run is ignored."""
        job = make_job()
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(jobs, _progress(job, 60.0), now=1.0)
        apply_message(jobs, _progress(job, 55.0), now=2.0)
        assert job.progress_pct == 60.0

    def test_status_change_restarts_progress(self, make_job):
        """Calibration and the final encode each start at zero."""
        job = make_job()
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(
            jobs, _progress(job, 80.0, status=JobStatus.CALIBRATING), now=1.0
        )
        assert job.status is JobStatus.CALIBRATING
        assert job.progress_pct == 80.0
        apply_message(jobs, _progress(job, 5.0, status=JobStatus.RUNNING), now=2.0)
        assert job.status is JobStatus.RUNNING
        assert job.progress_pct == 5.0

    def test_status_change_restarts_speed(self, make_job):
        """Window-encode speeds do not carry into the final encode."""
        job = make_job(duration_s=100.0)
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(
            jobs,
            _progress(job, 50.0, status=JobStatus.CALIBRATING, speed=8.0),
            now=1.0,
        )
        assert job.smoothed_speed == 8.0

        apply_message(
            jobs, _progress(job, 1.0, 1.0, status=JobStatus.RUNNING, speed=2.0), now=1.5
        )
        assert job.speed == 2.0
        assert job.smoothed_speed == 2.0
        assert job.last_speed_update == 1.5
        assert job.displayed_eta_seconds == 50

    def test_completed(self, make_job):
        """JobCompleted finishes the job at 100 percent."""
        job = make_job()
        job.last_error = "previous attempt"
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(jobs, JobCompleted(job.id), now=1.0)
        assert job.status is JobStatus.DONE
        assert job.progress_pct == 100.0
        assert job.displayed_eta_seconds == 0
        assert job.last_error is None

    def test_failed(self, make_job):
        """JobFailed records the error text."""
        job = make_job()
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(jobs, JobFailed(job.id, "ffmpeg exited with code 1"))
        assert job.status is JobStatus.FAILED
        assert job.last_error == "ffmpeg exited with code 1"
        assert job.displayed_eta_seconds is None

    def test_failed_with_partial_output(self, make_job):
        """A kept partial output is recorded for the resume cleanup."""
        job = make_job()
        jobs = {job.id: job}
        apply_message(jobs, JobStarted(job.id), now=0.0)
        apply_message(jobs, JobFailed(job.id, "cancelled", partial_output=True))
        assert job.partial_output is True

    def test_idle_and_unknown_ignored(self, make_job):
        """Idle messages and unknown job ids change nothing."""
        job = make_job()
        jobs = {job.id: job}
        assert apply_message(jobs, WorkerIdle(0)) is None
        assert apply_message(jobs, JobStarted("missing")) is None
        assert job.status is JobStatus.PENDING
