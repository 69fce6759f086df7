#!/usr/bin/env python3
"""
Namespace Labeler - Entry Point

A Kubernetes controller that watches Namespace objects and makes sure
each one carries the managed-by=namespace-labeler label.

Usage:
    python run.py [--kubeconfig PATH] [--in-cluster] [--dry-run] [--workers N]
"""

from namespace_labeler.main import main


if __name__ == "__main__":
    main()
