from endledger.testing.fixtures import fake_transport, memory_app  # noqa: F401
