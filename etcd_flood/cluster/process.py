"""
Process supervision for etcd nodes

Launches a node executable, pumps its merged stdout/stderr into the log
tagged with the node name, and tracks every started process in the run's
LaunchedSet so teardown can reach it even when the caller never does.
"""

import asyncio
import logging
import textwrap
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from ..utils.exceptions import LaunchError, TeardownError
from ..utils.logging import NODE_OUTPUT_LOGGER

LOG = logging.getLogger(__name__)
OUTPUT_LOG = logging.getLogger(NODE_OUTPUT_LOGGER)


class NodeHandle:
    """
    A launched node process.

    ``kill()`` is idempotent: the first call sends SIGKILL and waits, later
    calls only wait (which returns immediately once the process is reaped).
    """

    def __init__(
        self,
        index: int,
        name: str,
        data_dir: Path,
        client_addr: str,
        process: asyncio.subprocess.Process,
    ):
        self.index = index
        self.name = name
        self.data_dir = Path(data_dir)
        self.client_addr = client_addr
        self.process = process
        self._pump: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    def start_output_pump(self) -> None:
        if self.process.stdout is not None and self._pump is None:
            self._pump = asyncio.ensure_future(self._pump_output(self.process.stdout))

    async def _pump_output(self, stream: asyncio.StreamReader) -> None:
        prefix = f"[{self.name}]"
        while True:
            try:
                chunk = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                # EOF; whatever is left had no trailing newline
                if e.partial:
                    self._log_output(prefix, e.partial)
                break
            except asyncio.LimitOverrunError as e:
                # Line longer than the stream limit: log it in pieces
                chunk = await stream.read(max(e.consumed, 1))
            self._log_output(prefix, chunk)

    @staticmethod
    def _log_output(prefix: str, chunk: bytes) -> None:
        OUTPUT_LOG.info(f"{prefix} {chunk.decode(errors='replace').rstrip()}")

    async def kill(self) -> int:
        """Force-kill the process (if still alive) and wait for it to exit."""
        if self.process.returncode is None:
            try:
                self.process.kill()
            except ProcessLookupError:
                # Exited between the returncode check and the signal
                pass
        returncode = await self.process.wait()

        if self._pump is not None:
            await self._pump
        return returncode

    async def wait(self) -> int:
        return await self.process.wait()

    def __repr__(self) -> str:
        state = "running" if self.is_running else f"exited({self.returncode})"
        return f"NodeHandle({self.name}, pid={self.pid}, {state})"


class LaunchedSet:
    """
    Ordered collection of every process launched during one run.

    Append-only while the cluster is being built; ``drain()`` kills each
    handle exactly once, in launch order, and empties the set.
    """

    def __init__(self):
        self._handles: List[NodeHandle] = []

    def add(self, handle: NodeHandle) -> None:
        self._handles.append(handle)

    def __iter__(self) -> Iterator[NodeHandle]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, handle: object) -> bool:
        return handle in self._handles

    async def drain(self) -> None:
        """
        Kill and reap every handle, regardless of its state.

        A failure on one handle does not stop the others; failures are
        reported together once every handle has been dealt with. A handle
        leaves the set only after its kill was attempted, so a drain that is
        cancelled midway leaves the rest in place for the next one.
        """
        errors = {}

        while self._handles:
            handle = self._handles[0]
            try:
                returncode = await handle.kill()
                LOG.debug(f"{handle.name} (pid {handle.pid}) exited with {returncode}")
            except Exception as e:
                LOG.error(f"Failed to kill {handle.name} (pid {handle.pid}): {type(e).__name__}: {e}")
                errors[handle.name] = f"{type(e).__name__}: {e}"
            self._handles.remove(handle)

        if errors:
            raise TeardownError(
                f"Failed to kill {len(errors)} node process(es): {', '.join(errors)}",
                failures=errors
            )


class ProcessSupervisor:
    """Starts node processes and registers them in a LaunchedSet."""

    def __init__(self, launched: LaunchedSet):
        self.launched = launched

    async def launch(
        self,
        executable: Union[str, Path],
        args: Sequence[str],
        *,
        index: int,
        name: str,
        data_dir: Union[str, Path],
        client_addr: str,
        banner: Optional[str] = None
    ) -> NodeHandle:
        """
        Start ``executable args...`` and return its handle.

        Raises:
            LaunchError: the process could not be started; nothing is registered
        """
        LOG.info(
            f"{banner or f'Launching {name}'} with args:\n"
            f"{textwrap.indent(chr(10).join(args), '    ')}"
        )

        try:
            process = await asyncio.create_subprocess_exec(
                str(executable),
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise LaunchError(
                f"Failed to start {name} (node {index}) from {executable}: {e}",
                index=index,
                name=name,
                executable=str(executable)
            )

        handle = NodeHandle(index, name, Path(data_dir), client_addr, process)
        self.launched.add(handle)
        handle.start_output_pump()

        LOG.info(f"{name} started (pid {process.pid}) on {client_addr}")
        return handle
