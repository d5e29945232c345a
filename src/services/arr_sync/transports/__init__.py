"""
Transport implementations for the ArrSync service.

Supports:
- HTTP/REST webhooks (FastAPI)
"""
