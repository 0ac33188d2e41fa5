"""
Pytest fixtures for the SacloudHTTP test suite.

Fixtures are organized by subsystem:
- http_mocking: scripted MockTransport, response builders and client factory
"""
