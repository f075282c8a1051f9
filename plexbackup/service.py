# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Service control - stopping and starting the Plex systemd unit.

Each operation runs one external command and either succeeds or raises
ServiceControlError; there is no retry.
"""

import asyncio
import contextlib
from typing import List, Protocol

import structlog

from plexbackup.exceptions import ServiceControlError

logger = structlog.get_logger()


class ServiceController(Protocol):
    """Stops and starts a named background service."""

    async def stop(self, service: str) -> None: ...

    async def start(self, service: str) -> None: ...


class SystemctlController:
    """
    Controls systemd units via ``[sudo] systemctl stop|start <unit>``.

    Args:
        use_sudo: Prefix commands with ``sudo`` (the backup normally runs
            as an unprivileged user with a sudoers rule for systemctl)
        systemctl: systemctl executable to invoke
    """

    def __init__(self, use_sudo: bool = True, systemctl: str = "systemctl"):
        self.use_sudo = use_sudo
        self.systemctl = systemctl

    def command(self, action: str, service: str) -> List[str]:
        argv = [self.systemctl, action, service]
        if self.use_sudo:
            argv.insert(0, "sudo")
        return argv

    async def stop(self, service: str) -> None:
        await self._run("stop", service)

    async def start(self, service: str) -> None:
        await self._run("start", service)

    async def _run(self, action: str, service: str) -> None:
        argv = self.command(action, service)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ServiceControlError(
                f"failed to launch {argv[0]}: {e}",
                details={"command": argv},
            ) from e

        try:
            _, stderr = await process.communicate()
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if process.returncode != 0:
            raise ServiceControlError(
                f"{' '.join(argv)} exited with status {process.returncode}",
                details={
                    "service": service,
                    "stderr": stderr.decode("utf-8", "replace").strip(),
                },
            )

        logger.debug("service_command_completed", action=action, service=service)
