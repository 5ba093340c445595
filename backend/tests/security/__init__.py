"""Security tests for the authorization and tenant isolation engine

This module contains security-focused tests including:
- Authentication bypass attempts against the permission dependencies
- Injection payloads flowing through access contexts and conditions
- Tenant escape attempts against resource validation
"""
