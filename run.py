#!/usr/bin/env python3
"""One-shot or scheduled backup runner"""
import sys

from mysqlbackup.main import main

if __name__ == '__main__':
    sys.exit(main())
