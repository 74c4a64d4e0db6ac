#!/usr/bin/env python3

import argparse
import logging
from pprof_lite.pprof_writer import PprofWriter, TimingError
from pprof_lite.parse_text_stacks import parse_text_stacks

logger = logging.getLogger("stacks_to_pprof")


def run(filename, out):
    writer = PprofWriter()
    dropped = 0
    for trace in parse_text_stacks(filename):
        try:
            writer.record(trace)
        except TimingError as e:
            logger.warning("dropping sample: %s", e)
            dropped += 1
    with open(out, "wb") as f:
        writer.write(f)
    if dropped:
        logger.warning("%d out-of-order samples dropped", dropped)
    return writer


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Transform a textual stack dump to a pprof wall-time profile."
    )
    parser.add_argument("filename", type=str, help="The filename of the stack dump")
    parser.add_argument(
        "-o",
        "--out",
        type=str,
        help="The output filename (pprof profile)",
        default="out.pb",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every new location"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    run(args.filename, args.out)


if __name__ == "__main__":
    main()
