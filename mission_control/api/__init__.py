"""
Mission Control HTTP API
"""
