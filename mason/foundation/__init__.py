"""Leaf utilities with no knowledge of packages or stages.

- `mason.foundation.command`: the one seam for spawning external programs
- `mason.foundation.config_io`: YAML/JSON loading and strict value parsing
- `mason.foundation.errors`: the error taxonomy shared by every stage
"""
