# NetSentinel Agent - System Commands
"""Short-lived OS commands (arp, ip, route, netsh) run as asyncio subprocesses."""

import asyncio


async def run_command(*args: str, timeout: float = 5.0) -> str:
    """
    Run a command and return its decoded stdout.

    Raises:
        asyncio.TimeoutError: If the command does not finish in time. The
            child is killed and reaped before the error propagates.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return stdout.decode(errors="replace")
