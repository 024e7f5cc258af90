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
"""FastAPI entrypoint for the WordPress provisioner."""

import logging
from threading import Lock
from typing import Callable

from fastapi import FastAPI, HTTPException

from provisioner.app.api.schemas import (
    ConnectionTestResponse,
    CreateInstallationRequest,
    CreateTargetRequest,
    DashboardResponse,
    InstallationResponse,
    TargetDetailResponse,
    TargetResponse,
)
from provisioner.app.application.job_service import JobService
from provisioner.app.application.pipeline_driver import PipelineDriver, RemoteShell
from provisioner.app.application.step_catalog import coerce_php_version
from provisioner.app.domain.models import JobParameters, JobRecord, TargetDescriptor
from provisioner.app.infrastructure.in_memory_job_store import InMemoryJobStore
from provisioner.app.infrastructure.in_memory_target_store import (
    InMemoryTargetStore,
    TargetEntry,
)
from provisioner.app.infrastructure.remote_session import RemoteSession
from provisioner.app.infrastructure.run_coordinator import RunCoordinator
from provisioner.app.infrastructure.simulated_session import SimulatedRemoteSession
from provisioner.app.settings import (
    load_job_timeout_seconds,
    load_pipeline_config,
    load_session_config,
    resolve_session_mode,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="WordPress Stack Provisioner",
    version="0.1.0",
)

pipeline_config = load_pipeline_config()
session_config = load_session_config()

store = InMemoryJobStore()
target_store = InMemoryTargetStore()
service = JobService(
    repository=store, error_message_bytes=pipeline_config.error_message_bytes
)
run_coordinator = RunCoordinator(
    on_failure=service.fail_job,
    job_timeout_seconds=load_job_timeout_seconds(),
)
_create_lock = Lock()


if resolve_session_mode() == "netmiko":

    def _netmiko_session() -> RemoteShell:
        return RemoteSession(config=session_config)

    session_factory: Callable[[], RemoteShell] = _netmiko_session
else:
    session_factory = SimulatedRemoteSession

driver = PipelineDriver(
    store=store,
    resolver=target_store,
    session_factory=session_factory,
    config=pipeline_config,
)


def to_response(job: JobRecord) -> InstallationResponse:
    """Convert domain model to API response."""
    return InstallationResponse(
        id=job.job_id,
        target_id=job.target_id,
        domain=job.parameters.domain,
        status=job.status.value,
        current_step=job.current_step,
        progress=job.progress,
        wp_admin_url=job.result_url,
        error_message=job.error_message,
        log=job.log,
        php_version=coerce_php_version(job.parameters.php_version),
        db_name=job.db_name,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


def to_target_response(entry: TargetEntry) -> TargetResponse:
    descriptor = entry.descriptor
    methods = []
    if descriptor.private_key:
        methods.append("key")
    if descriptor.password:
        methods.append("password")
    return TargetResponse(
        target_id=entry.target_id,
        name=entry.name,
        address=descriptor.address,
        port=descriptor.port,
        username=descriptor.username,
        auth_methods=methods,
    )


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health endpoint."""
    return {"status": "ok"}


@app.post("/api/targets", response_model=TargetResponse)
def create_target(payload: CreateTargetRequest) -> TargetResponse:
    """Register a target machine."""
    entry = target_store.add(
        name=payload.name,
        descriptor=TargetDescriptor(
            address=payload.address,
            port=payload.port,
            username=payload.username,
            private_key=payload.private_key or None,
            password=payload.password or None,
        ),
    )
    return to_target_response(entry)


@app.get("/api/targets", response_model=list[TargetResponse])
def list_targets() -> list[TargetResponse]:
    return [to_target_response(entry) for entry in target_store.list()]


@app.get("/api/targets/{target_id}", response_model=TargetDetailResponse)
def get_target(target_id: str) -> TargetDetailResponse:
    """Target details with its installations, newest first."""
    entry = target_store.get(target_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Target not found")
    return TargetDetailResponse(
        **to_target_response(entry).model_dump(),
        installations=[to_response(job) for job in service.for_target(target_id)],
    )


@app.delete("/api/targets/{target_id}", status_code=204)
def delete_target(target_id: str) -> None:
    """Remove a target that has no installation in flight."""
    if target_store.get(target_id) is None:
        raise HTTPException(status_code=404, detail="Target not found")
    if any(not job.status.is_terminal for job in service.for_target(target_id)):
        raise HTTPException(
            status_code=409, detail="Target has an installation in progress"
        )
    target_store.remove(target_id)


@app.post("/api/targets/{target_id}/test", response_model=ConnectionTestResponse)
def test_target(target_id: str) -> ConnectionTestResponse:
    """Check that the stored credentials can open a shell."""
    try:
        descriptor = target_store.resolve(target_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    ok, error = session_factory().test_connectivity(descriptor)
    return ConnectionTestResponse(ok=ok, error=error)


@app.post("/api/installations", response_model=InstallationResponse)
def create_installation(payload: CreateInstallationRequest) -> InstallationResponse:
    """Create a pending installation and dispatch it."""
    if target_store.get(payload.target_id) is None:
        raise HTTPException(status_code=404, detail="Target not found")

    parameters = JobParameters(
        domain=payload.domain,
        admin_email=payload.admin_email,
        site_title=payload.site_title,
        php_version=payload.php_version,
    )
    with _create_lock:
        if service.has_active(payload.target_id, parameters.domain):
            raise HTTPException(
                status_code=409,
                detail="An installation for this domain is already in progress",
            )
        job = service.create_job(parameters=parameters, target_id=payload.target_id)

    started = run_coordinator.start(
        job_id=job.job_id,
        target=lambda: driver.run(job.job_id, payload.target_id),
    )
    if not started:
        raise HTTPException(status_code=409, detail="Job run already in progress")
    logger.info("Installation %s queued for %s", job.job_id, parameters.domain)
    return to_response(job)


@app.get("/api/dashboard", response_model=DashboardResponse)
def dashboard() -> DashboardResponse:
    """Totals and the five most recent installations."""
    run_coordinator.expire_overdue()
    counts = service.status_counts()
    return DashboardResponse(
        total_targets=len(target_store.list()),
        total_installations=counts["total"],
        succeeded=counts["succeeded"],
        failed=counts["failed"],
        in_progress=counts["in_progress"],
        recent=[to_response(job) for job in service.list()[:5]],
    )


@app.get("/api/installations", response_model=list[InstallationResponse])
def list_installations() -> list[InstallationResponse]:
    """List installations in reverse chronological order."""
    run_coordinator.expire_overdue()
    return [to_response(job) for job in service.list()]


@app.get("/api/installations/{job_id}", response_model=InstallationResponse)
def get_installation(job_id: str) -> InstallationResponse:
    """Fetch installation status, progress and log."""
    run_coordinator.expire_overdue()
    job = service.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Installation not found")
    return to_response(job)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
