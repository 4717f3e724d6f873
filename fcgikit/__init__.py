"""FastCGI protocol records, output streams, request environments, PostgreSQL parameter encoding and HTTP client helpers."""

__version__ = "0.1.0"

__all__ = [
    "protocol",
    "stream",
    "httputil",
    "environment",
    "sqlparams",
    "curl",
    "curler",
]