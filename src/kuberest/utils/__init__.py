# ABOUTME: Utilities package initialization for kuberest
# ABOUTME: Contains shared utilities for transport, auth, and logging

"""
kuberest Utilities Package

Shared utilities:
    - client.py: Request executor with option layering and response classification
    - auth.py: Service-account token and CA certificate discovery
    - logging.py: Structured logging with correlation IDs and audit trail
"""
