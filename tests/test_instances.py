import os

import psutil
import pytest

from accept_airplay.instances import find_other_instances, is_agent_process, terminate_other_instances


class FakeProcess:
    def __init__(self, pid, cmdline, stubborn=False, gone=False, denied=False):
        self.pid = pid
        self._cmdline = cmdline
        self.stubborn = stubborn
        self.gone = gone
        self.denied = denied
        self.terminated = False
        self.killed = False

    def cmdline(self):
        if self.gone:
            raise psutil.NoSuchProcess(self.pid)
        return self._cmdline

    def terminate(self):
        if self.denied:
            raise psutil.AccessDenied(self.pid)
        self.terminated = True

    def kill(self):
        self.killed = True

    def wait(self, timeout=None):
        if self.stubborn and not self.killed:
            raise psutil.TimeoutExpired(timeout, self.pid)
        return 0


@pytest.mark.parametrize("cmdline", [
    ["/usr/local/bin/accept-airplay"],
    ["/usr/bin/python3", "/usr/local/bin/accept-airplay", "--no-service"],
    ["/usr/bin/python3", "-m", "accept_airplay"],
    ["python", "-m", "accept_airplay.cli", "-v"],
])
def test_agent_command_lines(cmdline):
    assert is_agent_process(cmdline)


@pytest.mark.parametrize("cmdline", [
    None,
    [],
    ["/usr/bin/python3", "-m", "pytest"],
    ["vim", "notes/accept-airplay"],
    ["/usr/bin/python3", "-m"],
])
def test_other_command_lines(cmdline):
    assert not is_agent_process(cmdline)


def test_skips_current_process_and_vanished_ones():
    me = FakeProcess(os.getpid(), ["accept-airplay"])
    other = FakeProcess(101, ["accept-airplay"])
    gone = FakeProcess(102, ["accept-airplay"], gone=True)
    unrelated = FakeProcess(103, ["bash"])

    assert find_other_instances([me, other, gone, unrelated]) == [other]


def test_terminates_others():
    other = FakeProcess(101, ["accept-airplay"])
    assert terminate_other_instances([other]) == [101]
    assert other.terminated and not other.killed


def test_force_kills_stubborn_instance():
    stubborn = FakeProcess(101, ["accept-airplay"], stubborn=True)
    assert terminate_other_instances([stubborn], timeout=0.01) == [101]
    assert stubborn.killed


def test_access_denied_is_skipped():
    denied = FakeProcess(101, ["accept-airplay"], denied=True)
    ok = FakeProcess(102, ["accept-airplay"])
    assert terminate_other_instances([denied, ok]) == [102]
