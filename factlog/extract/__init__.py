"""
FactLog Extraction
===================

Turns an action envelope into the ground fact set for a compiled rulespec.

Components:
    - extractor.py:  Claim resolution and fact materialization
"""
