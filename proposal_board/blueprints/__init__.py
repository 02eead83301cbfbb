"""
Proposal Board Workflow Engine
Blueprint registry.
"""
