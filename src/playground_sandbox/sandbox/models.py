"""Request/response contracts and closed enumerations for sandbox operations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeVar

_EnumT = TypeVar("_EnumT", bound=Enum)


class Channel(str, Enum):
    """Toolchain release track; selects the container image."""

    STABLE = "stable"
    BETA = "beta"
    NIGHTLY = "nightly"

    @property
    def container_name(self) -> str:
        return _CHANNEL_IMAGES[self]


class Mode(str, Enum):
    """Build profile; only release mode changes the command."""

    DEBUG = "debug"
    RELEASE = "release"


class CompileTarget(str, Enum):
    """Compiler emission target for compile requests."""

    ASSEMBLY = "asm"
    LLVM_IR = "llvm-ir"

    @property
    def emit_flag(self) -> str:
        return _TARGET_OUTPUTS[self].emit_flag

    @property
    def artifact_filename(self) -> str:
        return _TARGET_OUTPUTS[self].artifact_filename


@dataclass(frozen=True, slots=True)
class TargetOutput:
    """Emission flag and the file rustc writes for one compile target."""

    emit_flag: str
    artifact_filename: str


_CHANNEL_IMAGES: Mapping[Channel, str] = MappingProxyType(
    {
        Channel.STABLE: "rust-stable",
        Channel.BETA: "rust-beta",
        Channel.NIGHTLY: "rust-nightly",
    }
)

# Single source of truth for target -> flag -> filename. rustc derives the
# filename from the ``-o`` stem plus the extension of the emitted kind.
_TARGET_OUTPUTS: Mapping[CompileTarget, TargetOutput] = MappingProxyType(
    {
        CompileTarget.ASSEMBLY: TargetOutput("--emit=asm", "compilation.s"),
        CompileTarget.LLVM_IR: TargetOutput("--emit=llvm-ir", "compilation.ll"),
    }
)


def target_outputs() -> Mapping[CompileTarget, TargetOutput]:
    """Return the read-only compile target lookup table."""

    return _TARGET_OUTPUTS


@dataclass(frozen=True, slots=True)
class CompileRequest:
    code: str
    target: CompileTarget
    channel: Channel = Channel.STABLE
    mode: Mode = Mode.DEBUG
    tests: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", _require_text(self.code, "code"))
        object.__setattr__(self, "target", coerce_enum(CompileTarget, self.target, "target"))
        object.__setattr__(self, "channel", coerce_enum(Channel, self.channel, "channel"))
        object.__setattr__(self, "mode", coerce_enum(Mode, self.mode, "mode"))
        object.__setattr__(self, "tests", bool(self.tests))


@dataclass(frozen=True, slots=True)
class ExecuteRequest:
    code: str
    channel: Channel = Channel.STABLE
    mode: Mode = Mode.DEBUG
    tests: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", _require_text(self.code, "code"))
        object.__setattr__(self, "channel", coerce_enum(Channel, self.channel, "channel"))
        object.__setattr__(self, "mode", coerce_enum(Mode, self.mode, "mode"))
        object.__setattr__(self, "tests", bool(self.tests))


@dataclass(frozen=True, slots=True)
class FormatRequest:
    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", _require_text(self.code, "code"))


@dataclass(frozen=True, slots=True)
class LintRequest:
    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", _require_text(self.code, "code"))


class _ResponseMixin:
    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


@dataclass(frozen=True, slots=True)
class CompileResponse(_ResponseMixin):
    success: bool
    code: str
    stdout: str
    stderr: str
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class ExecuteResponse(_ResponseMixin):
    success: bool
    stdout: str
    stderr: str
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class FormatResponse(_ResponseMixin):
    success: bool
    code: str
    stdout: str
    stderr: str
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class LintResponse(_ResponseMixin):
    success: bool
    stdout: str
    stderr: str
    exit_code: int | None = None


SandboxRequest = CompileRequest | ExecuteRequest | FormatRequest | LintRequest
SandboxResponse = CompileResponse | ExecuteResponse | FormatResponse | LintResponse

OPERATIONS: tuple[str, ...] = ("compile", "execute", "format", "lint")


def request_from_mapping(operation: str, payload: Mapping[str, object]) -> SandboxRequest:
    """Build a typed request for ``operation`` from a JSON-like mapping."""

    normalized = operation.strip().lower() if isinstance(operation, str) else ""
    if normalized not in OPERATIONS:
        allowed = ", ".join(OPERATIONS)
        raise ValueError(f"unsupported operation {operation!r}; expected one of: {allowed}")

    allowed_keys = {
        "compile": {"code", "target", "channel", "mode", "tests"},
        "execute": {"code", "channel", "mode", "tests"},
        "format": {"code"},
        "lint": {"code"},
    }[normalized]
    unknown = sorted(key for key in payload if key not in allowed_keys)
    if unknown:
        raise ValueError(f"unknown fields for {normalized} request: {', '.join(unknown)}")
    if "code" not in payload:
        raise ValueError(f"{normalized} request requires 'code'")

    fields = dict(payload)
    if "tests" in fields and not isinstance(fields["tests"], bool):
        raise ValueError("tests must be a boolean")

    if normalized == "compile":
        if "target" not in fields:
            raise ValueError("compile request requires 'target'")
        return CompileRequest(**fields)  # type: ignore[arg-type]
    if normalized == "execute":
        return ExecuteRequest(**fields)  # type: ignore[arg-type]
    if normalized == "format":
        return FormatRequest(**fields)  # type: ignore[arg-type]
    return LintRequest(**fields)  # type: ignore[arg-type]


def coerce_enum(enum_type: type[_EnumT], value: object, field_name: str) -> _EnumT:
    """Accept an enum member or its string value (case-insensitive)."""

    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string or {enum_type.__name__}")
    normalized = value.strip().lower()
    try:
        return enum_type(normalized)
    except ValueError as exc:
        allowed = ", ".join(str(item.value) for item in enum_type)
        raise ValueError(
            f"unsupported {field_name} {value!r}; expected one of: {allowed}"
        ) from exc


def _require_text(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    return value


__all__ = [
    "OPERATIONS",
    "Channel",
    "CompileRequest",
    "CompileResponse",
    "CompileTarget",
    "ExecuteRequest",
    "ExecuteResponse",
    "FormatRequest",
    "FormatResponse",
    "LintRequest",
    "LintResponse",
    "Mode",
    "SandboxRequest",
    "SandboxResponse",
    "TargetOutput",
    "coerce_enum",
    "request_from_mapping",
    "target_outputs",
]
