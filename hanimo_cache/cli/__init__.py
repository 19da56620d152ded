# =============================================================================
# hanimo_cache/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Operator tooling for the cache layer.  The CLI builds the same object
# graph the app builds at start-up (Settings -> remote config -> factory ->
# CacheService) and runs one command against it, so what it reports is
# what the app would see with the same environment.
#
# Architecture Notes:
#   - argparse only; the CLI is a one-shot script, not a long-lived server.
#   - Log output goes to stderr so ``--json`` output on stdout stays
#     machine-readable.
# =============================================================================

"""Command-line tools for inspecting and maintaining the cache.

- ``python -m hanimo_cache.cli stats`` - active provider and counters
- ``python -m hanimo_cache.cli get KEY`` - read one entry
- ``python -m hanimo_cache.cli clear`` - drop every entry
"""
