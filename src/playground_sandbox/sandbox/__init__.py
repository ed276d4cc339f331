"""Sandbox session primitives: workspace, command builder, orchestrator, extractor."""

from playground_sandbox.sandbox.command_builder import (
    CommandBuilder,
    IsolationConfig,
    build_execution_command,
)
from playground_sandbox.sandbox.errors import (
    EncodingError,
    InvocationError,
    OutputMissingError,
    ReadError,
    ResourceError,
    SandboxError,
    SourceWriteError,
)
from playground_sandbox.sandbox.models import (
    Channel,
    CompileRequest,
    CompileResponse,
    CompileTarget,
    ExecuteRequest,
    ExecuteResponse,
    FormatRequest,
    FormatResponse,
    LintRequest,
    LintResponse,
    Mode,
    SandboxRequest,
    SandboxResponse,
    request_from_mapping,
)
from playground_sandbox.sandbox.orchestrator import (
    ProcessOutput,
    ProcessRunner,
    SandboxOrchestrator,
    SubprocessRunner,
    run_request,
    run_request_async,
)
from playground_sandbox.sandbox.result_extractor import read_artifact
from playground_sandbox.sandbox.termination import TerminationKind, classify_termination
from playground_sandbox.sandbox.workspace import Workspace, sweep_stale_workspaces

__all__ = [
    "Channel",
    "CommandBuilder",
    "CompileRequest",
    "CompileResponse",
    "CompileTarget",
    "EncodingError",
    "ExecuteRequest",
    "ExecuteResponse",
    "FormatRequest",
    "FormatResponse",
    "InvocationError",
    "IsolationConfig",
    "LintRequest",
    "LintResponse",
    "Mode",
    "OutputMissingError",
    "ProcessOutput",
    "ProcessRunner",
    "ReadError",
    "ResourceError",
    "SandboxError",
    "SandboxOrchestrator",
    "SandboxRequest",
    "SandboxResponse",
    "SourceWriteError",
    "SubprocessRunner",
    "TerminationKind",
    "Workspace",
    "build_execution_command",
    "classify_termination",
    "read_artifact",
    "request_from_mapping",
    "run_request",
    "run_request_async",
    "sweep_stale_workspaces",
]
