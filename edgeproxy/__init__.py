"""Edge accelerator for Docker registries, Linux mirrors and arbitrary HTTP resources."""

__version__ = "1.0.0"
