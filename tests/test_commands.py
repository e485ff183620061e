"""Tests for short-lived system commands."""

import asyncio

import pytest

from netsentinel.agent import commands
from netsentinel.agent.commands import run_command


class MockProcess:
    """Subprocess stand-in that never exits on its own."""

    def __init__(self, stdout: bytes = b"", hang: bool = True):
        self.stdout = stdout
        self.hang = hang
        self.killed = False
        self.reaped = False
        self._exited = asyncio.Event()
        if not hang:
            self._exited.set()

    async def communicate(self):
        await self._exited.wait()
        return self.stdout, b""

    async def wait(self):
        await self._exited.wait()
        if self.killed:
            self.reaped = True
            return -9
        return 0

    def kill(self):
        self.killed = True
        self._exited.set()


def fake_exec(proc, calls):
    async def create_subprocess_exec(*args, **kwargs):
        calls.append(args)
        return proc
    return create_subprocess_exec


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_returns_stdout(self, monkeypatch):
        calls = []
        proc = MockProcess(b"default via 192.168.1.1 dev eth0\n", hang=False)
        monkeypatch.setattr(commands.asyncio, "create_subprocess_exec", fake_exec(proc, calls))

        out = await run_command("ip", "route", "show", "default")

        assert out == "default via 192.168.1.1 dev eth0\n"
        assert calls == [("ip", "route", "show", "default")]

    @pytest.mark.asyncio
    async def test_timeout_kills_and_reaps(self, monkeypatch):
        """A hung command is killed and waited on before the timeout propagates."""
        proc = MockProcess()
        monkeypatch.setattr(commands.asyncio, "create_subprocess_exec", fake_exec(proc, []))

        with pytest.raises(asyncio.TimeoutError):
            await run_command("arp", "-a", timeout=0.01)

        assert proc.killed
        assert proc.reaped
