# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# JOB TRACKER
# -----------------------------------------------------------------------------
# Responsibility: One progress record per ExportUnit for the client session.
# Lifecycle: pending -> exporting -> done | failed
#
# The engine only writes here; it never reads a job to decide anything.
# Listeners get every transition (e.g. to push progress to a browser).
#
# Jobs belong to the caller that created them (`owner`, a credentials
# digest). Stored payloads share one byte budget; the oldest are dropped
# first and their jobs keep has_output=True without bytes.
# -----------------------------------------------------------------------------

import threading
from collections.abc import Callable

from rich.console import Console

from shapeport.domain.models import ExportUnit, Job, JobStatus, utc_now

console = Console()

JobListener = Callable[[Job], None]


class JobTracker:
    """In-memory job registry, safe to use from worker threads."""

    def __init__(self, payload_budget: int | None = None) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._listeners: list[JobListener] = []
        self._payload_budget = payload_budget
        self._payload_order: list[str] = []

    def subscribe(self, listener: JobListener) -> None:
        """Call `listener` with the job after every transition."""
        self._listeners.append(listener)

    def _notify(self, job: Job) -> None:
        for listener in self._listeners:
            try:
                listener(job)
            except Exception as e:
                console.print(f"[yellow][JOBS] Listener error for {job.id}: {e}[/yellow]")

    def register(self, unit: ExportUnit) -> Job:
        """
        Create (or reset) the pending record for a unit.

        A job that is currently exporting is left alone: another request is
        already running the same unit.
        """
        with self._lock:
            existing = self._jobs.get(unit.job_id)
            if existing and existing.status is JobStatus.EXPORTING:
                return existing
            job = Job(
                id=unit.job_id,
                owner=unit.owner,
                studio_id=unit.studio_id,
                studio_name=unit.studio_name,
                part_id=unit.part_id,
                part_name=unit.part_name,
                format=unit.format,
                config_tag=unit.config_tag,
                combine_scope=unit.combine_scope,
            )
            self._jobs[job.id] = job
        self._notify(job)
        return job

    def _update(self, job_id: str, **changes) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            job = job.model_copy(update={**changes, "updated_at": utc_now()})
            self._jobs[job_id] = job
        self._notify(job)
        return job

    def mark_exporting(self, job_id: str) -> Job | None:
        return self._update(job_id, status=JobStatus.EXPORTING, error=None, details=None)

    def mark_done(
        self, job_id: str, entry_name: str | None = None, payload: bytes | None = None
    ) -> Job | None:
        """Mark success. Without a payload the job is a zero-result success."""
        job = self._update(
            job_id,
            status=JobStatus.DONE,
            entry_name=entry_name,
            payload=payload,
            has_output=payload is not None,
        )
        if job is not None and payload is not None:
            with self._lock:
                self._payload_order.append(job_id)
            self._evict_payloads()
            return self.get(job_id)
        return job

    def mark_failed(
        self,
        job_id: str,
        error: str,
        error_kind: str | None = None,
        details: str | None = None,
    ) -> Job | None:
        return self._update(
            job_id,
            status=JobStatus.FAILED,
            error=error,
            error_kind=error_kind,
            details=details,
            payload=None,
            has_output=False,
        )

    def _evict_payloads(self) -> None:
        """Drop the oldest stored payloads until the total fits the budget."""
        if self._payload_budget is None:
            return
        evicted = []
        with self._lock:
            total = sum(len(j.payload) for j in self._jobs.values() if j.payload is not None)
            while total > self._payload_budget and self._payload_order:
                job_id = self._payload_order.pop(0)
                job = self._jobs.get(job_id)
                if job is None or job.payload is None:
                    continue
                total -= len(job.payload)
                self._jobs[job_id] = job.model_copy(update={"payload": None})
                evicted.append(job_id)
        if evicted:
            console.print(f"[yellow][JOBS] Dropped stored output of {len(evicted)} job(s)[/yellow]")

    def get(self, job_id: str, owner: str | None = None) -> Job | None:
        """A job by id. With `owner`, jobs of other callers are invisible."""
        with self._lock:
            job = self._jobs.get(job_id)
        if job is not None and owner is not None and job.owner != owner:
            return None
        return job

    def list_jobs(self, owner: str | None = None) -> list[Job]:
        """All jobs (or one caller's), oldest first."""
        with self._lock:
            jobs = [j for j in self._jobs.values() if owner is None or j.owner == owner]
        return sorted(jobs, key=lambda job: job.created_at)

    def clear(self, owner: str | None = None) -> int:
        """Forget every job (or one caller's). Returns how many were removed."""
        with self._lock:
            doomed = [i for i, j in self._jobs.items() if owner is None or j.owner == owner]
            for job_id in doomed:
                del self._jobs[job_id]
            self._payload_order = [i for i in self._payload_order if i in self._jobs]
        console.print(f"[yellow][JOBS] Cleared {len(doomed)} job(s)[/yellow]")
        return len(doomed)
