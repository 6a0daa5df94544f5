"""
OrderDesk Core Primitives
===========================
Engine-agnostic building blocks shared by the order and invoicing
engines. Pure Python, no Django dependency.

Primitives:
    numeric - round2, lenient number parsing, scanner input, formatting
"""
