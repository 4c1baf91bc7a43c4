"""
Cache Domain Module

Domain model for the tagged expiring cache.
Contains entities, value objects, the index policy, the entry codec and
the store gateway and backend contracts.
"""
