"""
Shared utilities for TokenPulse: error handling and monitoring.
"""
