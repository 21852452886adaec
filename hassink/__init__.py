"""hassInk: Home Assistant dashboards rendered for e-ink devices."""

__version__ = "1.0.0"
