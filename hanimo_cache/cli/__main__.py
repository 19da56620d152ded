"""Allow ``python -m hanimo_cache.cli`` execution."""

from hanimo_cache.cli.cache import main

main()
