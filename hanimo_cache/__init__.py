"""hanimo cache: pluggable memory, SQLite and Cloudflare R2 caching for the Hanimo app."""

__version__ = "0.1.0"
