import csv
from datetime import datetime, timedelta, timezone

import pprof_lite.stack_dto as dto

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _lines_in_file(filename):
    with open(filename, "r", encoding="utf-8") as file:
        yield from file.readlines()


def _content_lines(lines):
    for line in lines:
        line = line.strip()
        if line == "":
            continue
        if line.startswith("#"):
            continue
        yield line


def _csv_rows(lines):
    return csv.reader(
        lines, delimiter=",", quotechar='"', skipinitialspace=True, strict=True
    )


def _optional_int(text):
    return int(text) if text != "" else None


def _parse_SAMPLE(args):
    if len(args) != 3:
        raise ValueError(f"SAMPLE expects 3 arguments, got: {args}")
    time_ms = _optional_int(args[0])
    return dto.StackTrace(
        pid=_optional_int(args[1]),
        thread_id=_optional_int(args[2]),
        time=_EPOCH + timedelta(milliseconds=time_ms) if time_ms is not None else None,
    )


def _parse_FRAME(args):
    if len(args) not in (3, 4):
        raise ValueError(f"FRAME expects 3 or 4 arguments, got: {args}")
    lineno = int(args[2])
    if lineno < 0:
        raise ValueError(f"FRAME expects a non-negative line number, got: {args}")
    return dto.StackFrame(
        name=args[0],
        relative_path=args[1],
        lineno=lineno,
        absolute_path=args[3] if len(args) == 4 and args[3] != "" else None,
    )


def _csv_rows_to_traces(rows):
    current = None
    for row in rows:
        command = row[0].upper()
        args = row[1:]

        if command == "SAMPLE":
            if current is not None:
                yield current
            current = _parse_SAMPLE(args)
        elif command == "FRAME":
            if current is None:
                raise ValueError(f"FRAME before any SAMPLE: {args}")
            current.trace.append(_parse_FRAME(args))
        else:
            raise ValueError(f"Unknown command {command}")
    if current is not None:
        yield current


def parse_stack_lines(lines):
    """Parses text stack dump lines into StackTrace objects."""
    r = _content_lines(lines)
    r = _csv_rows(r)
    r = _csv_rows_to_traces(r)
    return r


def parse_text_stacks(filename):
    """Parses a text stack dump file into StackTrace objects."""
    return parse_stack_lines(_lines_in_file(filename))
