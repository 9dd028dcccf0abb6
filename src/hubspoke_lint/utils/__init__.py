# ABOUTME: Utilities package initialization for hubspoke-lint
# ABOUTME: Contains the ArgoCD client and logging helpers

"""
hubspoke-lint Utilities Package

Shared utilities:
    - client.py: Read-only ArgoCD API client with retry logic and secret masking
    - logging.py: Structured logging with correlation IDs and audit trail
"""
