"""
Mission Control notification delivery daemon
"""
