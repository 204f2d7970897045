"""
perennial - PhET release branch build and deploy tooling.

Subpackages:
    core          logging, errors, process runner, git plumbing, timing
    common        release branches, versions, dependency snapshots, page loads
    build_server  the queued build and deploy server
"""

__version__ = "0.1.0"
