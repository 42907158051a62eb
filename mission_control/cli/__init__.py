"""
Mission Control operator CLI
"""
