"""Bounded safety verification of RLBox sandboxed code in LLVM IR."""

__version__ = "0.1.0"
