"""
Test Suite

Tests run against the dry-run backend with a frozen clock and the sample
hierarchy from ``infoflow.repositories.seed``; no MongoDB is needed.

Structure:
    tests/
    ├── conftest.py              # Fixtures: clock, stores, engine, flow helpers
    ├── test_routing.py          # Routing table and permission guard
    ├── test_merge_engine.py     # Consolidation strategies
    ├── test_engine_create.py    # Request creation
    ├── test_engine_flow.py      # Hierarchy walk, fan-out, consolidation
    ├── test_engine_decline.py   # Decline & improve, form returns
    ├── test_engine_lifecycle.py # Deadlines, terminal actions, concurrency
    ├── test_services.py         # Read service, directory, outbox, dry-run store
    └── test_api.py              # HTTP surface

To run tests:
    pytest tests/
"""
