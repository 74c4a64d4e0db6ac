from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pprof_lite.parse_text_stacks import parse_stack_lines, parse_text_stacks
from pprof_lite.stack_dto import StackFrame, StackTrace

DUMP = """\
# two samples from one thread
SAMPLE, 1700000000000, 4242, 1
FRAME, sleep, lib/worker.rb, 12, /srv/app/lib/worker.rb
FRAME, "run, loop", lib/worker.rb, 30

SAMPLE, 1700000000005, 4242, 1
FRAME, run, lib/worker.rb, 31
"""


def test_parses_samples_and_frames() -> None:
    traces = list(parse_stack_lines(DUMP.splitlines()))

    assert len(traces) == 2
    first = traces[0]
    assert first.pid == 4242
    assert first.thread_id == 1
    assert first.time == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert first.trace == [
        StackFrame(name="sleep", relative_path="lib/worker.rb", lineno=12),
        StackFrame(name="run, loop", relative_path="lib/worker.rb", lineno=30),
    ]
    assert first.trace[0].absolute_path == "/srv/app/lib/worker.rb"
    assert first.trace[1].absolute_path is None
    assert (traces[1].time - first.time).total_seconds() == pytest.approx(0.005)


def test_empty_fields_are_absent() -> None:
    traces = list(parse_stack_lines(["SAMPLE, , , "]))

    assert traces == [StackTrace()]


def test_sample_without_frames_has_empty_trace() -> None:
    traces = list(parse_stack_lines(["SAMPLE, 1, 2, 3", "SAMPLE, 2, 2, 3", "FRAME, f, a.rb, 1"]))

    assert traces[0].trace == []
    assert len(traces[1].trace) == 1


def test_directives_are_case_insensitive() -> None:
    traces = list(parse_stack_lines(["sample, 1, , ", "frame, f, a.rb, 1"]))

    assert traces[0].trace[0].name == "f"


def test_frame_before_sample_raises() -> None:
    with pytest.raises(ValueError, match="FRAME before any SAMPLE"):
        list(parse_stack_lines(["FRAME, f, a.rb, 1"]))


def test_unknown_command_raises() -> None:
    with pytest.raises(ValueError, match="Unknown command"):
        list(parse_stack_lines(["SAMPLE, 1, 2, 3", "MAPPING, 0x1000"]))


@pytest.mark.parametrize(
    "line",
    ["SAMPLE, 1, 2", "FRAME, f, a.rb", "FRAME, f, a.rb, 1, /a.rb, extra"],
)
def test_wrong_argument_count_raises(line: str) -> None:
    lines = ["SAMPLE, 1, 2, 3", line] if line.startswith("FRAME") else [line]
    with pytest.raises(ValueError, match="expects"):
        list(parse_stack_lines(lines))


def test_parses_file(tmp_path) -> None:
    path = tmp_path / "stacks.txt"
    path.write_text(DUMP, encoding="utf-8")

    traces = list(parse_text_stacks(path))

    assert [len(t.trace) for t in traces] == [2, 1]


def test_surrounding_whitespace_is_ignored(tmp_path) -> None:
    path = tmp_path / "stacks.txt"
    path.write_text("   SAMPLE, 1, 2, 3   \n\t# note\n  FRAME, f, a.rb, 4\t\n", encoding="utf-8")

    traces = list(parse_text_stacks(path))

    assert traces[0].pid == 2
    assert traces[0].trace == [StackFrame(name="f", relative_path="a.rb", lineno=4)]


def test_negative_line_number_raises() -> None:
    with pytest.raises(ValueError, match="FRAME expects a non-negative line number"):
        list(parse_stack_lines(["SAMPLE, 1, 2, 3", "FRAME, f, a.rb, -1"]))
