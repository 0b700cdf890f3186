"""
hpvs-deploy Test Suite
======================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/          → Tests for hpvs_deploy.core (config, enums, models, exceptions)
    ├── test_integrations/  → Tests for hpvs_deploy.integrations (docker, gpg, IBM Cloud, mocks)
    ├── test_pipeline/      → Tests for hpvs_deploy.pipeline (signer, registration, provisioner)
    ├── test_integration/   → End-to-end runs of the orchestrator and CLI on mock backends
    └── conftest.py         → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_pipeline/     # Run only pipeline tests
    pytest --cov=hpvs_deploy        # Run with coverage report
"""
