"""FastCGI record framing, HTTP request environment parsing and SQL parameter encoding."""

__version__ = "0.1.0"
__all__ = ["environment", "http", "protocol", "sql", "stream"]