"""Entity records and storage adapters."""
