"""PartyLedger: реестр события с фиксированным депозитом."""

__version__ = "0.1.0"
