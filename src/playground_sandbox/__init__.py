"""playground-sandbox: run untrusted Rust snippets inside resource-limited containers.

Each request (compile, execute, format, lint) gets a private workspace, one
container invocation and a response carrying the toolchain's output.
"""

from playground_sandbox.sandbox import (
    IsolationConfig,
    SandboxError,
    SandboxOrchestrator,
    run_request,
    run_request_async,
)

__version__ = "0.1.0"

__all__ = [
    "IsolationConfig",
    "SandboxError",
    "SandboxOrchestrator",
    "__version__",
    "run_request",
    "run_request_async",
]
