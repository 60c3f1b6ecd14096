"""Kalangka - offline-first sync engine for jackfruit field records.

Trees, flower wrappings, fruit baggings and user accounts are written to a
local SQLite database first and reconciled with the Kalangka REST API (and
Supabase Storage for photos) whenever the device is online.

Usage:
    kalangka init-db
    kalangka sync
    kalangka pull
    kalangka stats
    kalangka run
"""

__version__ = "0.1.0"
