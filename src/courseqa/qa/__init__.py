"""Scanning, scoring and remediation of course packages."""
