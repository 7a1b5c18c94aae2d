"""Contract financial engine for mutual-aid savings and credit contracts."""

__version__ = "0.1.0"
