# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
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
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""In-memory repository for provisioning job records."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock

from provisioner.app.domain.models import (
    COMPLETED_STEP_LABEL,
    FAILED_STEP_LABEL,
    JobEvent,
    JobRecord,
    JobStatus,
    utc_now,
)
from provisioner.app.domain.state_machine import JobStateMachine


def _log_entry(message: str) -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    return f"[{timestamp}] {message}\n"


class InMemoryJobStore:
    """Thread-safe in-memory job repository.

    Every mutation happens under one lock and is validated by the state
    machine, so the pending -> running check-and-set is atomic and readers
    always get a consistent snapshot.
    """

    def __init__(self, state_machine: JobStateMachine | None = None) -> None:
        self._lock = Lock()
        self._jobs: dict[str, JobRecord] = {}
        self._state_machine = state_machine or JobStateMachine()

    def _require(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise LookupError(f"Job not found: {job_id}")
        return job

    def _apply(self, job: JobRecord, event: JobEvent) -> None:
        transition = self._state_machine.transition(job.status, event)
        job.status = transition.next_status

    def save(self, job: JobRecord) -> None:
        with self._lock:
            self._jobs[job.job_id] = replace(job)

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def list(self) -> list[JobRecord]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def try_start(self, job_id: str) -> bool:
        """Move a pending job to running. False if it is not pending."""
        with self._lock:
            job = self._require(job_id)
            if not self._state_machine.can_transition(job.status, JobEvent.START):
                return False
            self._apply(job, JobEvent.START)
            job.started_at = utc_now()
            return True

    def persist_details(self, job_id: str, db_name: str, db_user: str) -> None:
        with self._lock:
            job = self._require(job_id)
            job.db_name = db_name
            job.db_user = db_user

    def persist_progress(self, job_id: str, step_label: str, progress: int) -> None:
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.RUNNING:
                raise ValueError(
                    f"Cannot record progress for job in status {job.status.value}"
                )
            job.current_step = step_label
            job.progress = max(job.progress, progress)
            job.log += _log_entry(f"Step: {step_label} ({job.progress}%)")

    def append_log(self, job_id: str, text: str) -> None:
        with self._lock:
            job = self._require(job_id)
            job.log += _log_entry(text)

    def persist_success(self, job_id: str, result_url: str) -> None:
        with self._lock:
            job = self._require(job_id)
            self._apply(job, JobEvent.SUCCEED)
            job.progress = 100
            job.current_step = COMPLETED_STEP_LABEL
            job.result_url = result_url
            job.completed_at = utc_now()
            job.log += _log_entry("Installation completed successfully.")

    def persist_failure(self, job_id: str, message: str) -> None:
        with self._lock:
            job = self._require(job_id)
            self._apply(job, JobEvent.FAIL)
            job.current_step = FAILED_STEP_LABEL
            job.error_message = message
            job.completed_at = utc_now()
            job.log += _log_entry(f"FAILED: {message}")
