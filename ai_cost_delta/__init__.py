"""AI Cost Delta - per-session cost accounting from a cumulative spend counter."""

__version__ = "0.1.0"
