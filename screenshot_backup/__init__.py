"""
Scheduled screenshot capture and backup for portfolio project pages.
"""
