"""
Disposable RDS restore environments.

Restores the latest snapshot of an RDS cluster or instance into a throwaway
copy, optionally fronted by an ephemeral SSH bastion, runs validation scripts
against it, and tears every provisioned resource down again.
"""

__version__ = "0.1.0"
