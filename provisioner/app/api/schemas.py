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
"""API schemas for the provisioner service."""

from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from provisioner.app.domain.models import DEFAULT_SITE_TITLE

DOMAIN_PATTERN = re.compile(
    r"^([a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$"
)
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

PhpVersion = Literal["8.1", "8.2", "8.3", "8.4"]


class CreateTargetRequest(BaseModel):
    """Payload to register a target machine."""

    name: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1, max_length=255)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(default="root", min_length=1, max_length=100)
    private_key: Optional[str] = None
    password: Optional[str] = None

    @model_validator(mode="after")
    def require_credential(self) -> "CreateTargetRequest":
        if not self.private_key and not self.password:
            raise ValueError("Either private_key or password is required")
        return self


class TargetResponse(BaseModel):
    """Registered target; credentials are never returned."""

    target_id: str
    name: str
    address: str
    port: int
    username: str
    auth_methods: List[str]


class ConnectionTestResponse(BaseModel):
    """Result of a pre-flight credential check."""

    ok: bool
    error: Optional[str] = None


class CreateInstallationRequest(BaseModel):
    """Payload to start a WordPress installation."""

    target_id: str = Field(min_length=1)
    domain: str = Field(min_length=1, max_length=255)
    admin_email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    site_title: str = Field(default=DEFAULT_SITE_TITLE, min_length=1, max_length=255)
    php_version: Optional[PhpVersion] = None

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, value: str) -> str:
        candidate = re.sub(r"^https?://", "", value.strip(), flags=re.IGNORECASE)
        candidate = candidate.rstrip("/").lower()
        if not DOMAIN_PATTERN.match(candidate):
            raise ValueError("Invalid domain name")
        return candidate


class InstallationResponse(BaseModel):
    """Poll-style installation status payload."""

    id: str
    target_id: str
    domain: str
    status: str
    current_step: Optional[str] = None
    progress: int
    wp_admin_url: Optional[str] = None
    error_message: Optional[str] = None
    log: str
    php_version: Optional[str] = None
    db_name: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class TargetDetailResponse(TargetResponse):
    """Target with its installation history."""

    installations: List[InstallationResponse]


class DashboardResponse(BaseModel):
    """Installation totals and the most recent runs."""

    total_targets: int
    total_installations: int
    succeeded: int
    failed: int
    in_progress: int
    recent: List[InstallationResponse]
