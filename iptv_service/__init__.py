"""IPTV channel directory and program guide service."""
