"""pibackup - Raspberry Pi SD card backup with retention."""

__version__ = "0.1.0"
