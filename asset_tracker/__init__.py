"""Asset tracker backend: asset codes, QR scans and asset photos."""
