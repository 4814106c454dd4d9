"""
Custom SSO Service
"""
