"""Infrastructure adapters: lock provider and transaction scopes."""
