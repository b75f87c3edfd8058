"""Automated DAO governance nodes: proposal reading, strategy voting, multi-wallet execution."""

__version__ = "0.1.0"
