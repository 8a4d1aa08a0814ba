"""
NuVet

Scan .NET solutions for vulnerable NuGet packages and update them to patched versions.
"""

__version__ = "0.1.0"

from .api import analyze, restore_backup, scan, update_vulnerable_packages
from .cli import main

__all__ = ["analyze", "main", "restore_backup", "scan", "update_vulnerable_packages"]
