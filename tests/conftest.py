import os

# Keep app import deterministic: no timezone lookup, no ephemeris download
os.environ.setdefault("SURFCAST_TIMEZONE", "Pacific/Auckland")
os.environ.setdefault("SURFCAST_LOCAL_ASTRONOMY", "false")
