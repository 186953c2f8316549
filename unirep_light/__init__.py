"""Off-chain replica and proof-input builder for a pseudonymous reputation protocol."""

__version__ = "0.1.0"
