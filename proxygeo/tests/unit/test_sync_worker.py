from __future__ import annotations

from proxygeo.workers.sync_worker import WorkerSettings, minutes_every


def test_minutes_every() -> None:
    assert minutes_every(15) == {0, 15, 30, 45}
    assert minutes_every(5) == set(range(0, 60, 5))
    assert minutes_every(60) == {0}
    assert minutes_every(0) == {0}


def test_worker_schedules_every_domain() -> None:
    names = {job.name for job in WorkerSettings.cron_jobs}
    assert names == {
        "cron:sync_residential",
        "cron:sync_datacenter",
        "cron:sync_mobile",
        "cron:sync_packages",
        "cron:sync_zip_codes",
    }
    assert all(job.unique for job in WorkerSettings.cron_jobs)
