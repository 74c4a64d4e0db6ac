import logging
from datetime import datetime, timedelta, timezone

from google.protobuf.message import EncodeError

from pprof_lite.pprof_proto import get_messages
from pprof_lite.stack_dto import StackFrame, StackTrace

logger = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class PprofError(Exception):
    """Base class for errors raised while building a pprof profile."""


class TimingError(PprofError, ValueError):
    """A sample is timestamped before the previously recorded one."""

    def __init__(self, previous: datetime, current: datetime):
        super().__init__(
            f"sample time {current.isoformat()} precedes previous sample time {previous.isoformat()}"
        )
        self.previous = previous
        self.current = current


class FieldRangeError(PprofError, ValueError):
    """A stack trace field does not fit its pprof wire type."""


class SerializationError(PprofError, RuntimeError):
    """The accumulated profile could not be encoded."""


def _as_utc(time: datetime) -> datetime:
    return time.astimezone(timezone.utc)


def _check_ranges(stack: StackTrace):
    for frame in stack.trace:
        if not 0 <= frame.lineno <= _INT64_MAX:
            raise FieldRangeError(f"line number {frame.lineno} of {frame.name} is out of range")
    for label, value in (("pid", stack.pid), ("thread_id", stack.thread_id)):
        if value is not None and not _INT64_MIN <= value <= _INT64_MAX:
            raise FieldRangeError(f"{label} {value} does not fit a 64-bit signed label")


class PprofWriter:
    """Accumulates sampled stack traces into a pprof wall-time profile.

    Strings, functions and locations are interned as they are first seen;
    every recorded trace appends one sample whose value is the number of
    milliseconds elapsed since the previous sample.
    """

    def __init__(self):
        self._pb = get_messages()
        self._profile = self._pb.Profile()
        self._profile.string_table.extend(["", "wall", "ms"])
        sample_type = self._profile.sample_type.add()
        sample_type.type = 1
        sample_type.unit = 2
        self._prev_time: datetime | None = None
        self._strings: dict[str, int] = {"": 0, "wall": 1, "ms": 2}
        self._functions: dict[tuple[str, str], int] = {}
        self._locations: dict[StackFrame, int] = {}

    @property
    def sample_count(self) -> int:
        return len(self._profile.sample)

    @property
    def string_table(self) -> list[str]:
        return list(self._profile.string_table)

    def profile(self):
        """Returns a copy of the profile accumulated so far."""
        copy = self._pb.Profile()
        copy.CopyFrom(self._profile)
        return copy

    def record(self, stack: StackTrace):
        """Adds one sample for the given stack trace.

        Naive timestamps are taken as local time. Raises TimingError when the
        trace is older than the previously recorded one and FieldRangeError
        when a line number, pid or thread id does not fit the wire format;
        in both cases the profile is left untouched.
        """
        time = _as_utc(stack.time) if stack.time is not None else datetime.now(timezone.utc)
        ms_since_last_sample = 0
        if self._prev_time is not None:
            elapsed = time - self._prev_time
            if elapsed < timedelta(0):
                raise TimingError(self._prev_time, time)
            ms_since_last_sample = elapsed // _ONE_MS
        _check_ranges(stack)

        self._add_sample(stack, ms_since_last_sample)
        self._prev_time = time

    def serialize(self) -> bytes:
        """Encodes the profile in the pprof wire format."""
        try:
            return self._profile.SerializeToString(deterministic=True)
        except (EncodeError, ValueError) as e:
            raise SerializationError(f"cannot encode profile: {e}") from e

    def write(self, f):
        """Writes the encoded profile to a binary file object."""
        data = self.serialize()
        f.write(data)
        logger.info(
            "wrote pprof profile: %d samples, %d locations, %d functions, %d bytes",
            self.sample_count,
            len(self._locations),
            len(self._functions),
            len(data),
        )

    def intern(self, text: str) -> int:
        """Returns the string table index of `text`, adding it if needed."""
        index = self._strings.get(text)
        if index is None:
            index = len(self._profile.string_table)
            self._profile.string_table.append(text)
            self._strings[text] = index
        return index

    def _add_sample(self, stack: StackTrace, sample_time: int):
        sample = self._profile.sample.add()
        sample.location_id.extend(self._location_id(frame) for frame in stack.trace)
        sample.value.append(sample_time)
        self._add_labels(sample, stack)

    def _location_id(self, frame: StackFrame) -> int:
        location_id = self._locations.get(frame)
        if location_id is not None:
            return location_id

        # Location ids are 1-based; 0 means "no location".
        location_id = len(self._locations) + 1
        location = self._profile.location.add()
        location.id = location_id
        line = location.line.add()
        line.function_id = self._function_id(frame)
        line.line = frame.lineno
        self._locations[frame] = location_id
        logger.debug("new location %d: %s:%d", location_id, frame.name, frame.lineno)
        return location_id

    def _function_id(self, frame: StackFrame) -> int:
        key = (frame.name, frame.relative_path)
        function_id = self._functions.get(key)
        if function_id is not None:
            return function_id

        # Functions are never removed, so table size + 1 is also max id + 1.
        function_id = len(self._functions) + 1
        function = self._profile.function.add()
        function.id = function_id
        function.name = self.intern(frame.name)
        function.filename = self.intern(frame.relative_path)
        self._functions[key] = function_id
        logger.debug(
            "new function %d: %s (%s)", function_id, frame.name, frame.relative_path
        )
        return function_id

    def _add_labels(self, sample, stack: StackTrace):
        if stack.pid is not None:
            label = sample.label.add()
            label.key = self.intern("pid")
            label.num = stack.pid
        if stack.thread_id is not None:
            label = sample.label.add()
            label.key = self.intern("thread_id")
            label.num = stack.thread_id
