"""
Logging, configuration and exceptions shared by the suite.
"""
