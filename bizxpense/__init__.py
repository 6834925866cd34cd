"""BizXpense: business transaction ledger."""

__version__ = "1.0.0"
