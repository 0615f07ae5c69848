"""
Backend Scripts Module

Utility scripts for database setup.

Available scripts:
    - seed_data.py: Loads the sample role directory

Usage:
    python -m scripts.seed_data
"""
