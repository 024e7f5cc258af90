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
"""Environment-driven settings for the provisioner service."""

from __future__ import annotations

import os

from provisioner.app.application.pipeline_driver import PipelineConfig
from provisioner.app.infrastructure.remote_session import SessionConfig

SESSION_MODES = ("simulated", "netmiko")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def resolve_session_mode() -> str:
    mode = os.getenv("PROVISIONER_SESSION_MODE", "simulated").strip().lower()
    if mode not in SESSION_MODES:
        raise ValueError(
            f"PROVISIONER_SESSION_MODE must be one of {', '.join(SESSION_MODES)}"
        )
    return mode


def load_session_config() -> SessionConfig:
    defaults = SessionConfig()
    return SessionConfig(
        connect_timeout=_env_float(
            "PROVISIONER_CONNECT_TIMEOUT", defaults.connect_timeout
        ),
        command_timeout=_env_float(
            "PROVISIONER_COMMAND_TIMEOUT", defaults.command_timeout
        ),
        reconnect_attempts=max(
            1, _env_int("PROVISIONER_RECONNECT_ATTEMPTS", defaults.reconnect_attempts)
        ),
        reconnect_backoff_seconds=_env_float(
            "PROVISIONER_RECONNECT_BACKOFF_SECONDS", defaults.reconnect_backoff_seconds
        ),
        marker_window_lines=max(
            1, _env_int("PROVISIONER_MARKER_WINDOW_LINES", defaults.marker_window_lines)
        ),
        failure_tail_bytes=_env_int(
            "PROVISIONER_FAILURE_TAIL_BYTES", defaults.failure_tail_bytes
        ),
    )


def load_pipeline_config() -> PipelineConfig:
    defaults = PipelineConfig()
    return PipelineConfig(
        step_log_bytes=_env_int("PROVISIONER_STEP_LOG_BYTES", defaults.step_log_bytes),
        error_message_bytes=_env_int(
            "PROVISIONER_ERROR_MESSAGE_BYTES", defaults.error_message_bytes
        ),
    )


def load_job_timeout_seconds() -> float:
    """Whole-job budget enforced by the run coordinator."""
    return _env_float("PROVISIONER_JOB_TIMEOUT_SECONDS", 900.0)
