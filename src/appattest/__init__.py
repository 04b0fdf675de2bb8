"""Client side of the App Attest challenge-response protocol."""

__version__ = "0.1.0"
