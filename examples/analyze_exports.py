#!/usr/bin/env python3
"""Example: load a comment table and a program listing, then ask a few questions about devices."""

import sys

from pyplc_ladder import CommentSearch, DeviceReasoner, FaultTracer, ProgramAnalyzer, ProgramStore
from pyplc_ladder.errors import InvalidDeviceError
from pyplc_ladder.reasoner import build_program_contexts
from pyplc_ladder.store import load_comment_file, load_program_files


def main() -> None:
    comments_path = "exports/comments.csv"  # change to your comment table export
    program_paths = ["exports/MAIN.csv"]  # change to your program listing exports

    store = ProgramStore()
    store.load(comments=load_comment_file(comments_path), programs=load_program_files(program_paths))
    analyzer = ProgramAnalyzer(store)

    try:
        # Comment and data type of one register
        print(f"D100 comment: {analyzer.get_comment('D', 100)!r}")
        print(f"D100 data type: {analyzer.infer_device_data_type('D', 100).value}")

        # Rungs around an internal relay
        for block in analyzer.get_program_blocks("M", 10, context_lines=5):
            print(block)
            print()
        print(f"Related to M10: {analyzer.get_related_devices('M', 10)}")

        # Free-text question
        question = "MAIN のモータが止まった"
        for hit in CommentSearch(store).search(question):
            print(f"{hit.device}\t{hit.score:.2f}\t{hit.comment}")
        inferred = DeviceReasoner().infer_multiple(question, build_program_contexts(store, question))
        print(f"Candidates: {[c.device for c in inferred.devices] or inferred.message}")

        # Fault coils
        report = FaultTracer(store).trace_error_coils()
        for coil in report.candidates:
            print(f"{coil.device} ({coil.comment}) <- {', '.join(coil.related_devices)}")
        if not report.candidates:
            print(report.message)
    except InvalidDeviceError as e:
        print(f"Invalid device: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
