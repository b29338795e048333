#!/usr/bin/env python3
"""Convenience runner for the marathon route GPX extractor.

Usage:
    python run.py tiles
    python run.py arcgis --instructions "0,3r,2"
"""
import sys

from marathon_route.main import main

if __name__ == "__main__":
    sys.exit(main())
