#!/usr/bin/env python3
"""Entry point for the Stock Analyzer."""

from stock_analyzer.cli import main

if __name__ == "__main__":
    main()
