"""
Core Utilities - configuration, logging, HTTP primitives and resilience

Shared by the extract and load layers; no layer-specific logic here.
"""
