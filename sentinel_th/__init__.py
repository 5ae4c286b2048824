"""Microsoft Sentinel threat-hunting integration service."""
