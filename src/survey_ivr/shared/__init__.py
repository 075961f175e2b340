"""
Shared utilities and infrastructure components (config-driven DB, logging, errors).
"""
