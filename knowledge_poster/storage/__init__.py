"""Filesystem-backed host collaborators.

Provides the markdown note document and the attachment store that the CLI plugs
into the orchestrator. Plugin hosts with their own vault abstraction supply their
own implementations of the same interfaces.
"""
