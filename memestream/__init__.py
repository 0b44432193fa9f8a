"""
Backend package for the MemeStream API.

This package provides a FastAPI application with record store, media store
and caption generator abstractions so the service can run against Postgres
and Tencent COS in production, or fully in memory during development.
"""
