"""Test suite for atelier.

Test Structure:
- unit/api/: HTTP client stack
- unit/config/: Config loading and environment credentials
- unit/generation/: Compiler, dispatch, jobs, results, finalize, orchestrator
- unit/storage/: Artifact store backends
- unit/cli/: Command line
- conftest.py: Shared fixtures (media bytes, pools, mock dispatchers)
"""
