"""
Storefront Test Suite.

This package contains all tests for the storefront infrastructure composer:

- unit/: Graph, permissions, routing, build, deploy, pipeline, settings and topology tests
- integration/: Topology to pipeline execution tests against collaborator doubles
- conftest.py: Shared fixtures and collaborator doubles

Run tests with: pytest
Run only unit tests: pytest tests/unit
"""
