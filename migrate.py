#!/usr/bin/env python3
"""
Cosmos DB Hierarchical Partition Key Migration
Interactive migration of a container into one with hierarchical partition keys
"""
import sys

from cosmos_migration.cli import main

if __name__ == "__main__":
    sys.exit(main())
