"""ticketbridge - Discord <-> Unthread support ticket bridge"""
__version__ = "0.1.0"
