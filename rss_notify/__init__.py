"""
RSS Notify - Watch RSS/Atom feeds and e-mail what's new.

A Python application that checks feeds for entries it has not
reported before and sends one consolidated e-mail per run.
"""

__version__ = "1.0.0"
