"""Workspace hub: one terminal session, one git clone and one review request
per unit of work.

This package provides:
- Discovery of workspace state from tmux sessions, git and GitHub
- Stale-while-revalidate caches for workspaces and review requests
- Provision, setup, create-from-branch and teardown workflows
- Context handover to a coding assistant in new sessions
- A FastAPI surface with health and Prometheus metrics endpoints
"""
