"""Convenience entry point for running the converter from a source checkout.

``python negative_inverter.py <input> [output]`` behaves like the installed
``negative-inverter`` console script; the implementation lives in
``negative_inverter.cli``.
"""
from __future__ import annotations

from negative_inverter.cli import main


if __name__ == "__main__":  # pragma: no cover - exercised via integration test
    raise SystemExit(main())
