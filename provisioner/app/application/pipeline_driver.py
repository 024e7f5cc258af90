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
"""Sequential step driver for one provisioning job."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from provisioner.app.application.step_catalog import StepCatalog
from provisioner.app.domain.errors import (
    CommandError,
    RemoteSessionError,
    StepFailedError,
)
from provisioner.app.domain.models import JobParameters, JobRecord, TargetDescriptor
from provisioner.app.domain.text_limits import join_within, trim_head

logger = logging.getLogger(__name__)

CONNECT_STEP_LABEL = "Connecting to server"
CONNECT_PROGRESS = 1


class RemoteShell(Protocol):
    """Remote session abstraction (netmiko or simulated)."""

    def __enter__(self) -> Any:
        """Enter the session scope."""

    def __exit__(self, exc_type, exc, tb) -> None:
        """Disconnect on scope exit."""

    def connect(self, target: TargetDescriptor) -> Any:
        """Open the session."""

    def execute_or_fail(self, command: str, timeout: float | None = None) -> str:
        """Run a command, raising on non-zero exit status."""


class JobStore(Protocol):
    """Persistence contract used by the driver."""

    def get(self, job_id: str) -> JobRecord | None:
        """Fetch a snapshot of a job."""

    def try_start(self, job_id: str) -> bool:
        """Atomically move a pending job to running."""

    def persist_details(self, job_id: str, db_name: str, db_user: str) -> None:
        """Record generated database identifiers."""

    def persist_progress(self, job_id: str, step_label: str, progress: int) -> None:
        """Record the step in flight."""

    def append_log(self, job_id: str, text: str) -> None:
        """Append one log entry."""

    def persist_success(self, job_id: str, result_url: str) -> None:
        """Transition to succeeded."""

    def persist_failure(self, job_id: str, message: str) -> None:
        """Transition to failed."""


class CredentialResolver(Protocol):
    """Resolves a target identity to a connection descriptor."""

    def resolve(self, target_id: str) -> TargetDescriptor:
        """Return the descriptor or raise LookupError."""


@dataclass(frozen=True)
class PipelineConfig:
    """Byte budgets applied when output reaches the job record."""

    step_log_bytes: int = 2000
    error_message_bytes: int = 1000


def describe_failure(exc: Exception) -> str:
    """Human-readable message for a failed run."""
    if isinstance(exc, (StepFailedError, RemoteSessionError, LookupError)):
        return str(exc)
    return f"Unexpected error: {type(exc).__name__}: {exc}"


def failure_message(exc: Exception, max_bytes: int) -> str:
    """Bounded failure message that always keeps where and how the run failed.

    Only the trailing diagnostic (command output, exception text) is trimmed,
    from its head.
    """
    if isinstance(exc, StepFailedError):
        cause = exc.cause
        if isinstance(cause, CommandError):
            headline = f"{exc.location}: {cause.summary}"
            return join_within(headline, cause.output_tail, max_bytes, "\nOutput: ")
        return join_within(exc.location, describe_failure(cause), max_bytes)
    if isinstance(exc, (RemoteSessionError, LookupError)):
        return join_within(str(exc), "", max_bytes)
    return join_within(f"Unexpected error: {type(exc).__name__}", str(exc), max_bytes)


class PipelineDriver:
    """Walks the step catalog over one remote session and records progress."""

    def __init__(
        self,
        store: JobStore,
        resolver: CredentialResolver,
        session_factory: Callable[[], RemoteShell],
        catalog_factory: Callable[[JobParameters], StepCatalog] = StepCatalog,
        config: PipelineConfig | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self.session_factory = session_factory
        self.catalog_factory = catalog_factory
        self.config = config or PipelineConfig()

    def run(self, job_id: str, target_id: str | None = None) -> None:
        """Execute a pending job to a terminal state. No-op otherwise.

        ``target_id`` defaults to the target recorded on the job.
        """
        job = self.store.get(job_id)
        if job is None:
            logger.warning("Job %s not found, skipping", job_id)
            return
        if not self.store.try_start(job_id):
            logger.info("Job %s is not pending (%s), skipping", job_id, job.status.value)
            return

        logger.info("Job %s started for %s", job_id, job.parameters.domain)
        self.store.append_log(job_id, "Starting WordPress + SSL installation...")
        try:
            catalog = self.catalog_factory(job.parameters)
            self.store.persist_details(job_id, catalog.db_name, catalog.db_user)
            target = self.resolver.resolve(target_id or job.target_id)
            with self.session_factory() as session:
                self.store.persist_progress(job_id, CONNECT_STEP_LABEL, CONNECT_PROGRESS)
                session.connect(target)
                self.store.append_log(
                    job_id, f"Connected to {target.address}:{target.port}"
                )
                self._run_steps(job_id, catalog, session)
                self.store.persist_success(job_id, catalog.admin_url)
        except Exception as exc:
            self._record_failure(job_id, exc)
            return
        logger.info("Job %s completed successfully", job_id)

    def _run_steps(self, job_id: str, catalog: StepCatalog, session: RemoteShell) -> None:
        steps = catalog.steps
        total = len(steps)
        for step in steps:
            self.store.persist_progress(job_id, step.label, step.weight)
            try:
                output = session.execute_or_fail(
                    catalog.command_for(step), timeout=step.timeout
                )
            except Exception as exc:
                raise StepFailedError(step.ordinal, total, step.label, exc) from exc

            excerpt, trimmed = trim_head(output, self.config.step_log_bytes)
            if trimmed:
                excerpt += "\n... [output truncated]"
            self.store.append_log(job_id, f"✓ {step.label}\n{excerpt}".rstrip())

    def _record_failure(self, job_id: str, exc: Exception) -> None:
        message = failure_message(exc, self.config.error_message_bytes)
        logger.error("Job %s failed: %s", job_id, message)
        try:
            self.store.persist_failure(job_id, message)
        except ValueError as transition_error:
            logger.warning("Could not mark job %s failed: %s", job_id, transition_error)
