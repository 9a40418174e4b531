"""Downstream pipeline trigger components.

Provides:
- Settings loaded from the CI environment (and an optional .env)
- Structured logging
- A small CLI surface (omnibus, cng, docs)
- Triggering a downstream pipeline and polling it to a terminal state
"""
