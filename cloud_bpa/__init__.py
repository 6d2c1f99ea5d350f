"""
Cloud BPA analysis core.

Infrastructure parsing (infra_parser) and differential scan analysis (differential).
"""

__version__ = "1.0.0"
