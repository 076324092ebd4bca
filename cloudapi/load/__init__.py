"""
Load Layer - Writes to the cloud API

Chunked batch writes with per-item result reporting.
"""
