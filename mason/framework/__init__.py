"""Release pipeline building blocks.

This package contains the stateful pieces of a run (workspace, descriptor,
build matrix, signing engine, publisher, stage runner). Sequencing them into a
run lives in `mason.app`.
"""
