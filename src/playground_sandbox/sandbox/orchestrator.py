"""Sandbox orchestrator: stage source, run the isolated toolchain, assemble responses."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from playground_sandbox.sandbox.command_builder import CommandBuilder, IsolationConfig
from playground_sandbox.sandbox.errors import InvocationError, SandboxError
from playground_sandbox.sandbox.models import (
    CompileRequest,
    CompileResponse,
    ExecuteRequest,
    ExecuteResponse,
    FormatRequest,
    FormatResponse,
    LintRequest,
    LintResponse,
    SandboxRequest,
    SandboxResponse,
)
from playground_sandbox.sandbox.result_extractor import (
    decode_stream,
    read_artifact,
    require_artifact,
)
from playground_sandbox.sandbox.termination import classify_termination
from playground_sandbox.sandbox.workspace import Workspace
from playground_sandbox.utils.concurrency import CancellationToken, await_cancellable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    """Raw result of one finished invocation, streams still undecoded."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    """Runs an argv to completion (injectable for tests)."""

    def run(self, argv: Sequence[str]) -> ProcessOutput: ...


class SubprocessRunner:
    """Blocking ``subprocess`` runner.

    No host-side timeout: the wall clock limit is enforced inside the
    container and this call waits for the engine process to exit.
    """

    def run(self, argv: Sequence[str]) -> ProcessOutput:
        try:
            completed = subprocess.run(
                list(argv),
                check=False,
                capture_output=True,
                stdin=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise InvocationError(f"unable to execute {argv[0]!r}") from exc
        return ProcessOutput(
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


class SandboxOrchestrator:
    """One sandbox session: a private workspace plus the operations that use it.

    Sessions are single-threaded. Concurrent callers each open their own
    orchestrator; nothing is shared between sessions.
    """

    def __init__(
        self,
        isolation: IsolationConfig | None = None,
        *,
        runner: ProcessRunner | None = None,
        temp_root: Path | str | None = None,
    ) -> None:
        self._isolation = isolation or IsolationConfig()
        self._runner: ProcessRunner = runner or SubprocessRunner()
        self._temp_root = temp_root
        self._workspace: Workspace | None = None

    @property
    def isolation(self) -> IsolationConfig:
        return self._isolation

    @property
    def workspace(self) -> Workspace:
        if self._workspace is None or self._workspace.closed:
            raise SandboxError("sandbox session is not open")
        return self._workspace

    def open(self) -> SandboxOrchestrator:
        """Create the session workspace; raises ``ResourceError`` on failure."""

        if self._workspace is not None and not self._workspace.closed:
            return self
        self._workspace = Workspace.open(self._temp_root)
        return self

    def close(self) -> None:
        if self._workspace is not None:
            self._workspace.close()

    def __enter__(self) -> SandboxOrchestrator:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def compile(self, request: CompileRequest) -> CompileResponse:
        workspace = self.workspace
        workspace.write_source(request.code)
        workspace.reset_output()
        argv = self._builder().compile_command(
            request.target, request.channel, request.mode, request.tests
        )
        output = self._invoke("compile", argv)

        artifact = read_artifact(workspace.output_dir, request.target.artifact_filename)
        return CompileResponse(
            success=output.succeeded,
            code=artifact if artifact is not None else "",
            stdout=decode_stream(output.stdout, "stdout"),
            stderr=decode_stream(output.stderr, "stderr"),
            exit_code=output.returncode,
        )

    def execute(self, request: ExecuteRequest) -> ExecuteResponse:
        self.workspace.write_source(request.code)
        argv = self._builder().execute_command(request.channel, request.mode, request.tests)
        output = self._invoke("execute", argv)

        return ExecuteResponse(
            success=output.succeeded,
            stdout=decode_stream(output.stdout, "stdout"),
            stderr=decode_stream(output.stderr, "stderr"),
            exit_code=output.returncode,
        )

    def format(self, request: FormatRequest) -> FormatResponse:
        workspace = self.workspace
        workspace.write_source(request.code)
        output = self._invoke("format", self._builder().format_command())

        # The formatter rewrites the mounted input file in place.
        formatted = require_artifact(workspace.input_file)
        return FormatResponse(
            success=output.succeeded,
            code=formatted,
            stdout=decode_stream(output.stdout, "stdout"),
            stderr=decode_stream(output.stderr, "stderr"),
            exit_code=output.returncode,
        )

    def lint(self, request: LintRequest) -> LintResponse:
        self.workspace.write_source(request.code)
        output = self._invoke("lint", self._builder().lint_command())

        return LintResponse(
            success=output.succeeded,
            stdout=decode_stream(output.stdout, "stdout"),
            stderr=decode_stream(output.stderr, "stderr"),
            exit_code=output.returncode,
        )

    def dispatch(self, request: SandboxRequest) -> SandboxResponse:
        """Route any request variant to its operation."""

        if isinstance(request, CompileRequest):
            return self.compile(request)
        if isinstance(request, ExecuteRequest):
            return self.execute(request)
        if isinstance(request, FormatRequest):
            return self.format(request)
        if isinstance(request, LintRequest):
            return self.lint(request)
        raise TypeError(f"unsupported request type: {type(request).__name__}")

    def _builder(self) -> CommandBuilder:
        workspace = self.workspace
        return CommandBuilder(workspace.input_file, workspace.output_dir, self._isolation)

    def _invoke(self, operation: str, argv: tuple[str, ...]) -> ProcessOutput:
        logger.debug("sandbox_command_built", extra={"operation": operation, "argv": list(argv)})
        started = time.perf_counter()
        output = self._runner.run(argv)
        duration_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "sandbox_invocation_finished",
            extra={
                "operation": operation,
                "returncode": output.returncode,
                "termination": classify_termination(
                    output.returncode, output.stderr.decode("utf-8", errors="replace")
                ).value,
                "duration_ms": round(duration_ms, 3),
                "stdout_bytes": len(output.stdout),
                "stderr_bytes": len(output.stderr),
            },
        )
        return output


def run_request(
    request: SandboxRequest,
    *,
    isolation: IsolationConfig | None = None,
    runner: ProcessRunner | None = None,
    temp_root: Path | str | None = None,
) -> SandboxResponse:
    """Run one request in a fresh session and release it afterwards."""

    with SandboxOrchestrator(isolation, runner=runner, temp_root=temp_root) as session:
        return session.dispatch(request)


async def run_request_async(
    request: SandboxRequest,
    *,
    isolation: IsolationConfig | None = None,
    runner: ProcessRunner | None = None,
    temp_root: Path | str | None = None,
    cancel_token: CancellationToken | None = None,
) -> SandboxResponse:
    """Awaitable, cancellable wrapper around :func:`run_request`.

    The whole session runs in a worker thread. Cancelling the awaiting task or
    ``cancel_token`` ends the caller's wait with ``asyncio.CancelledError``;
    the worker still waits for the container to exit and then removes its
    workspace. Tearing down the container itself is left to the caller.
    """

    work = asyncio.to_thread(
        run_request,
        request,
        isolation=isolation,
        runner=runner,
        temp_root=temp_root,
    )
    return await await_cancellable(work, cancel_token)


__all__ = [
    "ProcessOutput",
    "ProcessRunner",
    "SandboxOrchestrator",
    "SubprocessRunner",
    "run_request",
    "run_request_async",
]
