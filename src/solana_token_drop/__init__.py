"""Create an SPL token, mint the supply to the operator and drop it to a recipient list."""

__version__ = "1.0.0"
