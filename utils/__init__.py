"""Shared helpers: retry engine, HTTP/SMTP clients, logging context."""
