"""
Progressive Onboarding - Source Package

Pre-authentication onboarding for the expense tracker: a visitor fills in
a profile and a first entry before having an account, and the draft is
migrated into permanent records the moment the account is created.

DESIGN PRINCIPLES:
1. The server draft is authoritative; the device cache is a mirror
2. Validation failures never touch storage
3. Migration happens exactly once, or not at all
4. Every error path returns the visitor to a known step
5. Storage layers are swappable
"""

__version__ = "1.0.0"
__author__ = "Progressive Onboarding Team"
