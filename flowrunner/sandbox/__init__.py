"""Sandbox module for restricted execution of node scripts."""

from flowrunner.sandbox.executor import ScriptRunner, classify_truthiness

__all__ = ["ScriptRunner", "classify_truthiness"]
