"""
FactLog Rendering
==================

Deterministic artifacts for humans and machines.

Components:
    - program.py:  Soufflé-style dump of the lowered program, and its parser
    - report.py:   Evaluation trace, envelope listing and the sealed JSON report
"""
