"""
Prerequisite gates checked by the supervisor.

- PermissionGate: Accessibility trust for this process.
- ServiceManager: LaunchAgent registration so the agent starts at login.

Both answer with a GateResult; OS failures are turned into results, not raised.
"""

import logging
import os
import plistlib
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional
from xml.parsers.expat import ExpatError

from accept_airplay.config import SERVICE_LABEL

logger = logging.getLogger(__name__)

LAUNCHCTL_TIMEOUT = 5


class GateResult(Enum):
    SUCCESS = "success"
    FAILURE_RETRYABLE = "failure_retryable"
    FAILURE_FATAL = "failure_fatal"


def _default_trust_check(prompt):
    from accept_airplay.ax_bridge import is_process_trusted
    return is_process_trusted(prompt)


class PermissionGate:
    """Accessibility permission check.

    The OS prompt is only requested on the first attempt of a run; repeats stay
    silent and the supervisor backs off instead.
    """

    def __init__(self, trust_check: Optional[Callable[[bool], bool]] = None,
                 max_attempts: Optional[int] = None):
        self._trust_check = trust_check or _default_trust_check
        self.max_attempts = max_attempts
        self.failures = 0

    def ensure_accessibility_permission(self, is_retry: bool = False) -> GateResult:
        try:
            trusted = self._trust_check(not is_retry)
        except Exception as e:
            logger.error("accessibility trust check failed: %s", e)
            return GateResult.FAILURE_FATAL

        if trusted:
            if self.failures:
                logger.info("accessibility permission granted")
            self.failures = 0
            return GateResult.SUCCESS

        self.failures += 1
        if self.max_attempts is not None and self.failures >= self.max_attempts:
            logger.error("accessibility permission still missing after %d attempts", self.failures)
            return GateResult.FAILURE_FATAL

        if is_retry:
            logger.debug("accessibility permission missing (attempt %d)", self.failures)
        else:
            logger.warning(
                "accessibility permission missing: System Settings → Privacy & Security → Accessibility"
            )
        return GateResult.FAILURE_RETRYABLE

    __call__ = ensure_accessibility_permission


def agent_program_arguments() -> List[str]:
    """Command launchd should run for this agent."""
    return [sys.executable, "-m", "accept_airplay"]


class ServiceManager:
    """Keeps the agent registered as a per-user LaunchAgent."""

    def __init__(self, label: str = SERVICE_LABEL, enabled: bool = True,
                 agents_dir: Optional[Path] = None, log_dir: Optional[Path] = None,
                 program_arguments: Optional[List[str]] = None):
        self.label = label
        self.enabled = enabled
        self.agents_dir = Path(agents_dir) if agents_dir else Path.home() / "Library" / "LaunchAgents"
        self.log_dir = Path(log_dir) if log_dir else Path.home() / "Library" / "Logs"
        self.program_arguments = program_arguments or agent_program_arguments()
        self._last_error = None

    # ==================== PATHS ====================

    @property
    def plist_path(self) -> Path:
        return self.agents_dir / f"{self.label}.plist"

    @property
    def service_target(self) -> str:
        return f"gui/{os.getuid()}/{self.label}"

    def get_last_error(self) -> Optional[str]:
        return self._last_error

    # ==================== OPERATIONS ====================

    def build_plist(self) -> dict:
        log_file = str(self.log_dir / f"{self.label}.log")
        return {
            "Label": self.label,
            "ProgramArguments": list(self.program_arguments),
            "RunAtLoad": True,
            "KeepAlive": {"SuccessfulExit": False},
            "ProcessType": "Background",
            "StandardOutPath": log_file,
            "StandardErrorPath": log_file,
        }

    def is_installed(self) -> bool:
        """Plist present with the current program arguments."""
        try:
            with open(self.plist_path, "rb") as f:
                current = plistlib.load(f)
        except (OSError, ValueError, ExpatError) as e:
            logger.debug("launch agent %s unreadable: %s", self.plist_path, e)
            return False
        if not isinstance(current, dict):
            return False
        return current.get("ProgramArguments") == list(self.program_arguments)

    def ensure_agent_status(self):
        if not self.enabled:
            logger.info("service registration disabled, running unmanaged")
            return GateResult.SUCCESS

        if not self.is_installed():
            try:
                self.agents_dir.mkdir(parents=True, exist_ok=True)
                with open(self.plist_path, "wb") as f:
                    plistlib.dump(self.build_plist(), f)
            except OSError as e:
                self._last_error = str(e)
                logger.error("failed to write launch agent %s: %s", self.plist_path, e)
                return GateResult.FAILURE_FATAL
            logger.info("installed launch agent %s", self.plist_path)

        if not self._launchctl("enable", self.service_target):
            return GateResult.FAILURE_FATAL

        logger.debug("launch agent %s enabled", self.label)
        return GateResult.SUCCESS

    __call__ = ensure_agent_status

    def unregister(self) -> bool:
        """Disable the agent and remove its plist."""
        ok = self._launchctl("disable", self.service_target)
        try:
            self.plist_path.unlink()
            logger.info("removed launch agent %s", self.plist_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self._last_error = str(e)
            logger.error("failed to remove launch agent %s: %s", self.plist_path, e)
            return False
        return ok

    def _launchctl(self, *args) -> bool:
        cmd = ["launchctl", *args]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=LAUNCHCTL_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            self._last_error = str(e)
            logger.error("%s failed: %s", " ".join(cmd), e)
            return False

        if result.returncode != 0:
            self._last_error = result.stderr.strip()
            logger.error("%s exited %d: %s", " ".join(cmd), result.returncode, self._last_error)
            return False
        return True
