"""
Jira Test Result Reporter: raises Jira issues for failing tests and resolves them when they pass again.
"""
__version__ = "1.0.0"
