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
"""Application layer use-cases for installation job lifecycle."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import uuid4

from provisioner.app.domain.models import JobParameters, JobRecord, JobStatus, utc_now
from provisioner.app.domain.text_limits import join_within

logger = logging.getLogger(__name__)

INFRASTRUCTURE_FAILURE_HEADLINE = "Job failed"


class JobRepository(Protocol):
    """Repository contract for job persistence."""

    def save(self, job: JobRecord) -> None:
        """Store or update a job."""

    def get(self, job_id: str) -> JobRecord | None:
        """Fetch a job by ID."""

    def list(self) -> list[JobRecord]:
        """All stored jobs."""

    def persist_failure(self, job_id: str, message: str) -> None:
        """Transition to failed."""


class JobService:
    """Use-case orchestration for job creation and out-of-band failure."""

    def __init__(self, repository: JobRepository, error_message_bytes: int = 1000):
        self.repository = repository
        self.error_message_bytes = error_message_bytes

    def create_job(self, parameters: JobParameters, target_id: str) -> JobRecord:
        """Create a pending job."""
        job = JobRecord(
            job_id=str(uuid4()),
            target_id=target_id,
            parameters=parameters,
            status=JobStatus.PENDING,
            created_at=utc_now(),
        )
        self.repository.save(job)
        return job

    def get(self, job_id: str) -> JobRecord | None:
        return self.repository.get(job_id)

    def list(self) -> list[JobRecord]:
        """Jobs in reverse chronological order."""
        jobs = self.repository.list()
        jobs.sort(key=lambda item: item.created_at, reverse=True)
        return jobs

    def has_active(self, target_id: str, domain: str) -> bool:
        """True if a non-terminal job already targets this machine and domain."""
        return any(
            job.target_id == target_id
            and job.parameters.domain == domain
            and not job.status.is_terminal
            for job in self.repository.list()
        )

    def fail_job(self, job_id: str, reason: str) -> bool:
        """Mark a non-terminal job failed from outside the driver.

        Returns False when the job is unknown or already terminal.
        """
        job = self.repository.get(job_id)
        if job is None or job.status.is_terminal:
            return False
        message = join_within(
            INFRASTRUCTURE_FAILURE_HEADLINE, reason, self.error_message_bytes
        )
        try:
            self.repository.persist_failure(job_id, message)
        except ValueError as exc:
            # The driver reached a terminal state first.
            logger.info("Job %s already finished: %s", job_id, exc)
            return False
        logger.error("Job %s marked failed by infrastructure: %s", job_id, reason)
        return True

    def for_target(self, target_id: str) -> list[JobRecord]:
        return [job for job in self.list() if job.target_id == target_id]

    def status_counts(self) -> dict[str, int]:
        """Totals per outcome for the dashboard."""
        jobs = self.repository.list()
        return {
            "total": len(jobs),
            "succeeded": sum(job.status == JobStatus.SUCCEEDED for job in jobs),
            "failed": sum(job.status == JobStatus.FAILED for job in jobs),
            "in_progress": sum(not job.status.is_terminal for job in jobs),
        }
