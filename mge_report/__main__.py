#!/usr/bin/env python
from mge_report.cli import main

"""
mge_report

A command line tool that summarises DNA barcode validation results of MGE parameter sweeps.

This tool ingests the validation tables of two institutions, links them to BOLD lab sheet and
taxonomy exports, classifies every validation attempt, and writes summary tables and plots.
"""

if __name__ == "__main__":
    main()
