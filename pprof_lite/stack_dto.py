from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class StackFrame:
    """Describes one frame of a sampled call stack.

    Two frames are the same frame when name, relative path and line number
    match; the absolute path is carried along for display only.
    """

    name: str
    relative_path: str
    lineno: int
    absolute_path: str | None = field(default=None, compare=False)


@dataclass
class StackTrace:
    """Describes a sampled call stack, leaf frame first."""

    trace: list[StackFrame] = field(default_factory=list)
    pid: int | None = None
    thread_id: int | None = None
    time: datetime | None = None
