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
"""SSH remote shell session using Netmiko for Linux provisioning targets."""

from __future__ import annotations

import io
import logging
import re
import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import paramiko
from netmiko import ConnectHandler  # type: ignore[import-untyped]
from netmiko.exceptions import (  # type: ignore[import-untyped]
    NetmikoAuthenticationException,
    NetmikoTimeoutException,
    ReadTimeout,
)

from provisioner.app.domain.errors import (
    AuthenticationError,
    CommandError,
    TransportError,
)
from provisioner.app.domain.models import TargetDescriptor
from provisioner.app.domain.text_limits import trim_tail

logger = logging.getLogger(__name__)

DEVICE_TYPE = "linux"

# Echo off keeps heredoc bodies out of captured output, no history keeps
# them off disk, empty PS2 keeps continuation prompts out of output.
SHELL_PREPARATION = "stty -echo; unset HISTFILE; PS2=''"

TRANSPORT_EXCEPTIONS = (
    NetmikoTimeoutException,
    ReadTimeout,
    paramiko.SSHException,
    OSError,
    EOFError,
)

_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


@dataclass(frozen=True)
class SessionConfig:
    """Timeouts and bounded policies for one remote session."""

    connect_timeout: float = 30.0
    command_timeout: float = 120.0
    reconnect_attempts: int = 3
    reconnect_backoff_seconds: float = 5.0
    exit_marker: str = "__PROVISION_EXIT__"
    marker_window_lines: int = 5
    failure_tail_bytes: int = 1000


def wrap_command(command: str, marker: str) -> str:
    """Run the body in a subshell and report its status on a sentinel line."""
    return f'(\n{command}\n) 2>&1; echo "{marker}:$?"'


def exit_status_pattern(marker: str) -> str:
    """Read-until pattern matching the sentinel only as a complete line."""
    return rf"(?:^|\n){re.escape(marker)}:\d+\r?\n"


def fresh_marker(prefix: str) -> str:
    """Sentinel unique to one command so output cannot forge it."""
    return f"{prefix}_{secrets.token_hex(8)}"


def parse_exit_marker(
    output: str, marker: str, window_lines: int
) -> Optional[Tuple[int, str]]:
    """
    Find the sentinel line in the tail of the output.

    Only the last window_lines lines are scanned, backwards, so a marker-like
    line printed by the command itself earlier in the output is ignored.

    Returns:
        Tuple of (exit_code, output_without_marker) or None if no marker found
    """
    pattern = re.compile(rf"^{re.escape(marker)}:(\d+)$")
    lines = output.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    lower = max(len(lines) - window_lines, 0)
    for index in range(len(lines) - 1, lower - 1, -1):
        match = pattern.match(lines[index].strip())
        if match:
            return int(match.group(1)), "\n".join(lines[:index]).rstrip("\n")
    return None


def load_private_key(material: str) -> paramiko.PKey:
    """Load PEM/OpenSSH private key material of any supported type."""
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(material))
        except (paramiko.SSHException, ValueError):
            continue
    raise AuthenticationError("Unsupported or invalid SSH private key")


class RemoteSession:
    """One authenticated remote shell with reconnect on transport failure."""

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self._handle: Optional[Any] = None
        self._target: Optional[TargetDescriptor] = None

    def __enter__(self) -> "RemoteSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._handle is not None

    def connect(self, target: TargetDescriptor) -> "RemoteSession":
        """Log in with the private key first, then the password."""
        self._close_handle()
        self._target = target

        methods = []
        if target.private_key:
            methods.append("key")
        if target.password:
            methods.append("password")
        if not methods:
            raise AuthenticationError(f"No SSH credential configured for {target.key}")

        for method in methods:
            if method == "key":
                try:
                    credential = {
                        "pkey": load_private_key(target.private_key or ""),
                        "use_keys": True,
                    }
                except AuthenticationError as exc:
                    logger.warning("Skipping SSH key for %s: %s", target.key, exc)
                    continue
            else:
                credential = {"password": target.password}
            try:
                handle = ConnectHandler(
                    device_type=DEVICE_TYPE,
                    host=target.address,
                    port=target.port,
                    username=target.username,
                    allow_agent=False,
                    timeout=self.config.connect_timeout,
                    **credential,
                )
            except NetmikoAuthenticationException:
                logger.warning("SSH %s authentication rejected for %s", method, target.key)
                continue
            except TRANSPORT_EXCEPTIONS as exc:
                raise TransportError(f"Connection to {target.key} failed: {exc}") from exc
            self._handle = handle
            logger.info("Connected to %s using %s authentication", target.key, method)
            self._prepare_shell()
            return self

        raise AuthenticationError(f"SSH authentication failed for {target.key}")

    def _prepare_shell(self) -> None:
        try:
            self._send(SHELL_PREPARATION, self.config.connect_timeout)
        except TransportError:
            self._close_handle()
            raise

    def _send(
        self, command: str, timeout: float, expect_string: Optional[str] = None
    ) -> str:
        if self._handle is None:
            raise TransportError("Not connected to any server. Call connect() first.")
        kwargs: dict[str, Any] = {
            "read_timeout": timeout,
            "cmd_verify": False,
            "strip_prompt": False,
            "strip_command": False,
        }
        if expect_string is not None:
            kwargs["expect_string"] = expect_string
        try:
            return self._handle.send_command(command, **kwargs)
        except TRANSPORT_EXCEPTIONS as exc:
            raise TransportError(f"Command transport failed: {exc}") from exc

    def execute(self, command: str, timeout: Optional[float] = None) -> str:
        """Run a command and return raw combined output."""
        return self._send(command, timeout or self.config.command_timeout)

    def execute_or_fail(self, command: str, timeout: Optional[float] = None) -> str:
        """
        Run a command and raise CommandError on non-zero exit status.

        Transport failures tear the session down and reconnect after a fixed
        backoff, up to reconnect_attempts tries for this call. A non-zero exit
        status is returned by the remote shell, so it is never retried.
        """
        marker = fresh_marker(self.config.exit_marker)
        wrapped = wrap_command(command, marker)
        expect = exit_status_pattern(marker)
        attempts = max(self.config.reconnect_attempts, 1)
        last_error: Optional[TransportError] = None

        for attempt in range(1, attempts + 1):
            try:
                if self._handle is None:
                    if self._target is None:
                        raise TransportError(
                            "Not connected to any server. Call connect() first."
                        )
                    self.connect(self._target)
                raw = self._send(
                    wrapped, timeout or self.config.command_timeout, expect
                )
                parsed = parse_exit_marker(
                    raw, marker, self.config.marker_window_lines
                )
                if parsed is None:
                    raise TransportError("Exit status marker missing from output")
                break
            except TransportError as exc:
                last_error = exc
                self._close_handle()
                logger.warning(
                    "Transport failure (attempt %s/%s): %s", attempt, attempts, exc
                )
                if attempt < attempts:
                    time.sleep(self.config.reconnect_backoff_seconds)
        else:
            raise TransportError(
                f"Giving up after {attempts} attempts: {last_error}"
            ) from last_error

        exit_code, output = parsed
        if exit_code != 0:
            tail, _ = trim_tail(output, self.config.failure_tail_bytes)
            raise CommandError(command, exit_code, tail)
        return output

    def test_connectivity(self, target: TargetDescriptor) -> Tuple[bool, Optional[str]]:
        """
        Validate credentials with a trivial marker command.

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        try:
            self.connect(target)
            output = self.execute('echo "CONNECTION_OK"')
            if "CONNECTION_OK" not in output:
                return False, "Connection check returned unexpected output"
            return True, None
        except AuthenticationError as e:
            return False, f"Authentication failed: {e}"
        except TransportError as e:
            return False, f"Connection error: {e}"
        finally:
            self.disconnect()

    def disconnect(self) -> None:
        """Release the transport handle; safe when already disconnected."""
        self._close_handle()

    def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.disconnect()
        except TRANSPORT_EXCEPTIONS as exc:
            logger.debug("Ignoring error while closing SSH handle: %s", exc)
