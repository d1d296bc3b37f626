"""
Provisioning orchestration: readiness polling, the acquisition ledger,
the staged orchestrator, and interrupt handling.
"""
