"""Ticket admission, exposure limits and settlement for a borlette betting network."""
