"""Prompting package.

This package contains the static prompt templates plus deterministic text helpers
(content preprocessing, prompt assembly, and generated-prompt clean-up). It does not
perform any network access or model invocation.
"""
