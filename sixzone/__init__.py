"""HTTP bridge for a six-zone whole-house audio amplifier."""

__version__ = "1.0.0"
