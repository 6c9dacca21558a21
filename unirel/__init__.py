# SPDX-License-Identifier: MIT
"""unirel - release automation for unified-version repositories."""

__version__ = "0.1.0"
