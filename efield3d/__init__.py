"""Monte-Carlo charge relaxation for capacitor and electrode geometries."""

__version__ = "0.3.0"
