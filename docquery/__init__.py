# docquery/__init__.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records
"""

__version__ = "0.1.0"
