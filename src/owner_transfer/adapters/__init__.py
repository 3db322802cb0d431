"""
Adapter layer for the ownership transfer.

Contains abstraction adapters for the item tree (local manifest/Drive), the
checkpoint store (local files/S3) and the slice scheduler (local/EventBridge).
Provides mode-aware implementations that work across deployment environments.
"""
