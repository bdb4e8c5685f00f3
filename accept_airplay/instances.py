"""
Single-instance enforcement.

The newest launch wins: on startup every other running agent process is asked
to terminate, and killed if it does not exit in time.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import psutil

logger = logging.getLogger(__name__)

SCRIPT_NAME = "accept-airplay"
MODULE_NAME = "accept_airplay"
TERMINATE_TIMEOUT = 3.0


def is_agent_process(cmdline: Optional[Sequence[str]]) -> bool:
    """Recognise ``accept-airplay`` or ``python -m accept_airplay`` command lines."""
    if not cmdline:
        return False
    args = list(cmdline)
    exe = Path(args[0]).name
    if exe == SCRIPT_NAME:
        return True
    if not exe.lower().startswith("python"):
        return False
    # interpreter running the console script or the module
    for i, arg in enumerate(args[1:], start=1):
        if arg == "-m":
            return i + 1 < len(args) and args[i + 1] in (MODULE_NAME, f"{MODULE_NAME}.cli")
        if not arg.startswith("-"):
            return Path(arg).name == SCRIPT_NAME
    return False


def find_other_instances(processes: Optional[Iterable] = None) -> List:
    current_pid = os.getpid()
    others = []
    for proc in processes if processes is not None else psutil.process_iter(["pid", "cmdline"]):
        try:
            if proc.pid == current_pid:
                continue
            if is_agent_process(proc.cmdline()):
                others.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return others


def terminate_other_instances(processes: Optional[Iterable] = None,
                              timeout: float = TERMINATE_TIMEOUT) -> List[int]:
    """Stop every other running agent; returns the pids that went away."""
    stopped = []
    for proc in find_other_instances(processes):
        pid = proc.pid
        logger.warning("terminating multiple instance with pid=%s", pid)
        try:
            proc.terminate()
            proc.wait(timeout=timeout)
        except psutil.TimeoutExpired:
            logger.warning("failed to terminate instance with pid=%s, forcing termination", pid)
            try:
                proc.kill()
                proc.wait(timeout=timeout)
            except psutil.NoSuchProcess:
                pass
            except (psutil.AccessDenied, psutil.TimeoutExpired) as e:
                logger.error("failed to force terminate instance with pid=%s: %s", pid, e)
                continue
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.error("failed to terminate instance with pid=%s: %s", pid, e)
            continue
        stopped.append(pid)
    return stopped
