#!/usr/bin/env python3
"""
S3-compatible Object Storage Client

Run this script to work with buckets and objects without installing
the package.

Usage:
    python run.py buckets                        # List buckets
    python run.py ls my-bucket logs/             # List objects under a prefix
    python run.py get my-bucket a.txt -o a.txt   # Download an object
    python run.py upload my-bucket big.iso ./big.iso --workers 4
    python run.py -c custom.json rm my-bucket a.txt b.txt
"""

import sys
from cos_client.cli import main

if __name__ == "__main__":
    sys.exit(main())
