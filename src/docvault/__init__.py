"""DocVault: encrypted document pipeline and PIN-gated public access gateway."""

__version__ = "0.1.0"
