# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the service:
# - test_api.py: End-to-end HTTP behaviour of the public routes
# - test_pipeline.py: Stage order, body parsing, error forwarding
# - test_router_table.py: Route registration and lookup
# - test_errors.py: PipelineError, envelope and response guard
# - test_logging.py: Structured logger and sinks
# - test_config.py: Settings defaults and overrides
# - test_server.py: Process supervisor failure paths
#
# Run tests with: pytest
# =============================================================================
