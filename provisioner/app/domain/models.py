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
"""Domain models for the provisioning pipeline."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

DEFAULT_SITE_TITLE = "My WordPress Site"
COMPLETED_STEP_LABEL = "Completed"
FAILED_STEP_LABEL = "Failed"


class JobStatus(str, Enum):
    """Lifecycle states for a provisioning job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.SUCCEEDED, JobStatus.FAILED}


class JobEvent(str, Enum):
    """Events that trigger state transitions."""

    START = "start"
    SUCCEED = "succeed"
    FAIL = "fail"


@dataclass(frozen=True)
class JobTransition:
    """Single transition entry."""

    current: JobStatus
    event: JobEvent
    next_status: JobStatus


@dataclass(frozen=True)
class JobParameters:
    """Validated input for one installation run."""

    domain: str
    admin_email: str
    site_title: str = DEFAULT_SITE_TITLE
    php_version: Optional[str] = None


@dataclass(frozen=True)
class TargetDescriptor:
    """SSH connection target with exactly the credentials needed to log in."""

    address: str
    port: int = 22
    username: str = "root"
    private_key: Optional[str] = None
    password: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable key for maps and logs."""
        return f"{self.username}@{self.address}:{self.port}"


@dataclass(frozen=True)
class Step:
    """One unit of the provisioning sequence."""

    ordinal: int
    label: str
    weight: int
    timeout: float
    render: Callable[[], str]


@dataclass
class JobRecord:
    """Job aggregate stored in repository."""

    job_id: str
    target_id: str
    parameters: JobParameters
    status: JobStatus
    created_at: str
    current_step: Optional[str] = None
    progress: int = 0
    log: str = ""
    result_url: Optional[str] = None
    error_message: Optional[str] = None
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


def utc_now() -> str:
    """UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()
