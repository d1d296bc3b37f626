"""
Command-line interface for rdsvalidator.
"""
