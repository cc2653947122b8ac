#!/usr/bin/env python3
"""Module entry point: ``python -m beetle.main``."""

from __future__ import annotations

from beetle.ui.cli import run

if __name__ == "__main__":
    run()
