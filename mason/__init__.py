"""Metadata-driven release pipeline for Go packages.

Reads `metadata.json`, checks the package out into an ephemeral GOPATH, runs
its tests, cross-compiles the target matrix, renders extra artifacts, signs
and verifies everything, and optionally publishes the results.

Common entrypoints:

- `mason.cli.main`: command line interface (`python -m mason`)
- `mason.app.pipeline.run_release`: load config and run one release
- `mason.app.pipeline.run_pipeline`: run the stages for an already loaded descriptor
"""
