"""
FactLog Verification
=====================

Datalog evaluation of compiled predicates, plus envelope stamping.

Components:
    - datalog.py:    Stratified bottom-up datalog engine
    - evaluator.py:  Lowering of rule kinds to datalog and verdict assembly
    - token.py:      Keyed verification tokens for passing envelopes
"""
