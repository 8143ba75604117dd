"""statehistory: audited state history and rollback for the admin console."""

__version__ = "0.3.0"
