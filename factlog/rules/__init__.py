"""
FactLog Rules
==============

Selector parsing and rulespec compilation.

Components:
    - selector.py:   Path selectors over the fact tree
    - compiler.py:   Rulespec validation and lowering to CompiledRulespec
    - validator.py:  Non-raising validation and JSON-schema export
"""
