"""Structural contract for skill-package repositories.

This package provides the three pieces of the validation gate:
1. Registry — the convention declared as data (required paths, header fields)
2. Header — parsing and type-checking of package document headers
3. Validator — the tree walk that folds both into a ValidationReport
"""

CONVENTION_VERSION = "1.0.0"
