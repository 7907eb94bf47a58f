"""Seat hold concurrency and broadcast engine."""
