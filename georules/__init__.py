"""geosite.dat / geoip.dat to JSON and sing-box rule-sets, with incremental R2 sync."""

__version__ = "0.1.0"
