"""Prompt Chain — FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request models,
shared-secret authorization, and the version prompt composition logic.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request validation.
auth
    Which routes need the master key, and the constant-time key check.
dependencies
    Injectable settings, store, provider client, and the auth guard.
prompt_builder
    Composition of a version's base prompt and active modules.
"""
