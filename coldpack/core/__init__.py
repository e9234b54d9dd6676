"""Core container functionality for coldpack."""
