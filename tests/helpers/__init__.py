"""Test helper modules for the packsync test suite.

- fakes: FakeShell standing in for ShellRunner
- packs: writers for pack.yaml fixtures and an in-memory registry builder
"""
